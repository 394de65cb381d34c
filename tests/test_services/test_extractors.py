"""Tests for the shape-tolerant field extractors."""
import math

from korvalia.services.extractors import (
    as_optional_text,
    as_text,
    count_videos,
    extract_address_component,
    extract_any_boolean_feature,
    extract_boolean_feature,
    extract_first_named_value,
    extract_image_urls,
    extract_localized_text,
    extract_named_value,
    extract_numeric,
    extract_video_urls,
    first_of,
)


class TestFirstOf:
    def test_object(self):
        assert first_of({"name": "Cádiz"}) == {"name": "Cádiz"}

    def test_one_element_array(self):
        assert first_of([{"name": "Cádiz"}, {"name": "Jerez"}]) == {"name": "Cádiz"}

    def test_empty_array(self):
        assert first_of([]) is None

    def test_array_of_non_objects(self):
        assert first_of(["Cádiz"]) is None

    def test_scalars(self):
        assert first_of(None) is None
        assert first_of("Cádiz") is None
        assert first_of(3) is None


class TestExtractNumeric:
    def test_numbers_pass_through(self):
        assert extract_numeric(950) == 950
        assert extract_numeric(95.5) == 95.5

    def test_numeric_strings(self):
        assert extract_numeric("950") == 950
        assert extract_numeric(" 145.2 ") == 145.2
        assert extract_numeric("-6.2925") == -6.2925

    def test_integral_float_becomes_int(self):
        value = extract_numeric("95.0")
        assert value == 95
        assert isinstance(value, int)

    def test_rejects_non_numbers(self):
        assert extract_numeric(None) is None
        assert extract_numeric("") is None
        assert extract_numeric("abc") is None
        assert extract_numeric("12 m²") is None
        assert extract_numeric({"value": 1}) is None

    def test_booleans_are_not_numbers(self):
        assert extract_numeric(True) is None
        assert extract_numeric(False) is None

    def test_non_finite(self):
        assert extract_numeric(math.inf) is None
        assert extract_numeric(float("nan")) is None
        assert extract_numeric("1e999") is None


class TestNamedValues:
    features = [
        {"name": "Hab.", "value": "3"},
        {"name": "Baños", "value": 2},
        {"name": "Planta", "value": "bajo"},
        "garbage",
    ]

    def test_exact_name(self):
        assert extract_named_value(self.features, "Hab.") == 3
        assert extract_named_value(self.features, "Baños") == 2

    def test_name_is_case_sensitive(self):
        assert extract_named_value(self.features, "hab.") is None

    def test_non_numeric_value(self):
        assert extract_named_value(self.features, "Planta") is None

    def test_not_a_list(self):
        assert extract_named_value(None, "Hab.") is None
        assert extract_named_value(7, "Hab.") is None

    def test_synonyms_in_order(self):
        assert extract_first_named_value(self.features, ("Habitaciones", "Hab.")) == 3
        assert extract_first_named_value(self.features, ("Dormitorios",)) is None

    def test_zero_falls_through_to_next_synonym(self):
        features = [{"name": "Hab.", "value": 0}, {"name": "Habitaciones", "value": "4"}]
        assert extract_first_named_value(features, ("Hab.", "Habitaciones")) == 4

    def test_zero_kept_for_last_synonym(self):
        features = [{"name": "Planta", "value": 0}]
        assert extract_first_named_value(features, ("Planta",)) == 0


class TestLocalizedText:
    def test_plain_string(self):
        assert extract_localized_text("Hola") == "Hola"

    def test_spanish_first(self):
        assert extract_localized_text({"es": "Hola", "en": "Hello"}) == "Hola"

    def test_english_fallback(self):
        assert extract_localized_text({"es": "", "en": "Hello"}) == "Hello"

    def test_nothing(self):
        assert extract_localized_text({"fr": "Bonjour"}) == ""
        assert extract_localized_text(None) == ""


class TestAddressComponent:
    def test_object_address(self):
        address = {"city": {"name": "Cádiz"}}
        assert extract_address_component(address, "city") == "Cádiz"

    def test_array_at_every_level(self):
        address = [{"city": [{"name": "Cádiz"}], "zone": [{"name": "Centro"}]}]
        assert extract_address_component(address, "city") == "Cádiz"
        assert extract_address_component(address, "zone") == "Centro"

    def test_missing_pieces(self):
        assert extract_address_component(None, "city") == ""
        assert extract_address_component({}, "city") == ""
        assert extract_address_component({"city": {"name": None}}, "city") == ""
        assert extract_address_component({"city": []}, "city") == ""


class TestMedia:
    def test_image_descriptors_prefer_thumbnail(self):
        images = [
            {"thumb_800_600": "https://img.test/a-800.jpg", "original": "https://img.test/a.jpg"},
            {"url": "https://img.test/b.jpg"},
            {"original": "https://img.test/c.jpg"},
            {"caption": "no url"},
        ]
        assert extract_image_urls(images) == [
            "https://img.test/a-800.jpg",
            "https://img.test/b.jpg",
            "https://img.test/c.jpg",
        ]

    def test_image_shapes(self):
        assert extract_image_urls(["https://img.test/a.jpg"]) == ["https://img.test/a.jpg"]
        assert extract_image_urls("https://img.test/a.jpg") == ["https://img.test/a.jpg"]
        assert extract_image_urls({"url": "https://img.test/a.jpg"}) == ["https://img.test/a.jpg"]
        assert extract_image_urls(None) == []

    def test_video_fields(self):
        videos = [{"video_url": "https://v.test/1"}, {"src": "https://v.test/2"}, {"link": "https://v.test/3"}]
        assert extract_video_urls(videos) == ["https://v.test/1", "https://v.test/2", "https://v.test/3"]

    def test_count_videos(self):
        assert count_videos([{"url": "a"}, {"url": "b"}]) == 2
        assert count_videos(3) == 3
        assert count_videos("2") == 2
        assert count_videos(None) == 0
        assert count_videos(-1) == 0


class TestBooleanFeatures:
    def test_strict_true_only(self):
        features = {"more_features": [{"name": "Ascensor", "value": True}, {"name": "Piscina", "value": "true"}]}
        assert extract_boolean_feature(features, "Ascensor") is True
        assert extract_boolean_feature(features, "Piscina") is False

    def test_false_and_absent_are_indistinguishable(self):
        """Reported-false and not-reported both normalize to False, on purpose."""
        features = {"more_features": [{"name": "Ascensor", "value": False}]}
        assert extract_boolean_feature(features, "Ascensor") is False
        assert extract_boolean_feature(features, "Terraza") is False

    def test_qualities_section(self):
        features = {"more_features": [], "qualities": [{"name": "Terraza", "value": True}]}
        assert extract_boolean_feature(features, "Terraza") is True

    def test_first_section_with_the_name_decides(self):
        features = {
            "more_features": [{"name": "Terraza", "value": False}],
            "qualities": [{"name": "Terraza", "value": True}],
        }
        assert extract_boolean_feature(features, "Terraza") is False

    def test_synonyms(self):
        features = {"qualities": [{"name": "Piscina comunitaria", "value": True}]}
        assert extract_any_boolean_feature(features, ("Piscina", "Piscina comunitaria")) is True

    def test_bare_number_features(self):
        assert extract_boolean_feature(12, "Ascensor") is False


class TestText:
    def test_as_text(self):
        assert as_text("Piso") == "Piso"
        assert as_text(123) == "123"
        assert as_text(12.0) == "12"
        assert as_text(None) == ""
        assert as_text(True) == ""

    def test_as_optional_text(self):
        assert as_optional_text("D") == "D"
        assert as_optional_text("") is None
        assert as_optional_text(None) is None
