"""Tests for slugify and canonical URL generation."""
import re

import pytest

from korvalia.services.slug_service import generate_canonical_url, slug_from_url, slugify, strip_accents

SLUG_SHAPE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")

SAMPLES = [
    "Sanlúcar de Barrameda",
    "Ático",
    "  --Piso   con   terraza!!--  ",
    "Dúplex & Chalet / Adosado",
    "ÑANDÚ",
    "Cádiz",
    "123 Main St.",
    "über_cool",
    "---",
    "",
    "€€€",
    "a--b",
]


class TestSlugify:
    def test_spanish_city(self):
        assert slugify("Sanlúcar de Barrameda") == "sanlucar-de-barrameda"

    def test_accents_and_enye(self):
        assert slugify("Ático") == "atico"
        assert slugify("Ñandú") == "nandu"

    def test_symbols_dropped_and_hyphens_collapsed(self):
        assert slugify("  --Piso   con   terraza!!--  ") == "piso-con-terraza"
        assert slugify("Dúplex & Chalet / Adosado") == "duplex-chalet-adosado"

    def test_empty(self):
        assert slugify("") == ""
        assert slugify("€€€") == ""

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text):
        assert slugify(slugify(text)) == slugify(text)

    @pytest.mark.parametrize("text", SAMPLES)
    def test_shape(self, text):
        slug = slugify(text)
        assert slug == "" or SLUG_SHAPE.match(slug)

    def test_strip_accents(self):
        assert strip_accents("Cádiz") == "Cadiz"


class TestCanonicalUrl:
    def test_city_only(self):
        offer = {"reference": "R1", "subtype_name": "Piso", "address": [{"city": {"name": "Cádiz"}}]}
        assert generate_canonical_url(offer) == "/R1/piso-en-cadiz"

    def test_with_zone(self):
        offer = {
            "reference": "R1",
            "subtype_name": "Piso",
            "address": [{"city": {"name": "Cádiz"}, "zone": {"name": "Centro"}}],
        }
        assert generate_canonical_url(offer) == "/R1/piso-en-cadiz-centro"

    def test_fallbacks(self):
        assert generate_canonical_url({"reference": "R2"}) == "/R2/inmueble-en-espana"

    def test_label_that_slugifies_to_nothing_uses_fallback(self):
        offer = {"reference": "R3", "subtype_name": "***", "address": {"city": {"name": "€"}}}
        assert generate_canonical_url(offer) == "/R3/inmueble-en-espana"

    def test_not_an_object(self):
        assert generate_canonical_url(None) == "//inmueble-en-espana"

    def test_slug_is_last_segment(self):
        assert slug_from_url("/R1/piso-en-cadiz-centro") == "piso-en-cadiz-centro"
