"""Canonical slug and URL generation for Emblematic offers.

Canonical path format: /{reference}/{subtype}-en-{city}[-{zone}]
e.g. /R1/piso-en-cadiz-centro

The slug (last path segment) is NOT unique on its own: two offers with the same
subtype, city and zone share it. The reference segment disambiguates the path.
"""
import re
import unicodedata
from typing import Any

from korvalia.services.extractors import as_text, extract_address_component

SUBTYPE_FALLBACK = "inmueble"
CITY_FALLBACK = "espana"

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")
_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def strip_accents(text: str) -> str:
    """Decompose (NFD) and drop combining diacritics: 'Cádiz' → 'Cadiz'."""
    return _COMBINING_MARKS.sub("", unicodedata.normalize("NFD", text))


def slugify(text: str) -> str:
    """'Sanlúcar de Barrameda' → 'sanlucar-de-barrameda'. Empty in, empty out."""
    slug = strip_accents(text.lower())
    slug = _DISALLOWED.sub("", slug)
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug)
    return slug.strip("-")


def generate_canonical_url(offer: Any) -> str:
    """Build the canonical path of a raw offer."""
    if not isinstance(offer, dict):
        offer = {}

    reference = as_text(offer.get("reference"))
    subtype = slugify(as_text(offer.get("subtype_name"))) or SUBTYPE_FALLBACK

    address = offer.get("address")
    city = slugify(extract_address_component(address, "city")) or CITY_FALLBACK
    zone = slugify(extract_address_component(address, "zone"))

    slug = f"{subtype}-en-{city}"
    if zone:
        slug += f"-{zone}"

    return f"/{reference}/{slug}"


def slug_from_url(canonical_url: str) -> str:
    return canonical_url.rsplit("/", 1)[-1]
