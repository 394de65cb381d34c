"""Mapper service: normalizes raw Emblematic offers into NormalizedProperty.

Handles:
- Operation: mode_name "Alquiler mensual" → RENT, anything else → SALE
- Price: features.prices [{name: "Venta"|"Alquiler", value}] → 950
- Areas: features.areas, built area preferred as the canonical area
- Rooms / bathrooms / floor: features.more_features named values
- Address: object-or-array at every level → city / zone / region / country
- Amenities: more_features then qualities, strict boolean True
- Media: images / videos in any shape → ordered URL lists
- Canonical URL + slug: /{reference}/{subtype}-en-{city}[-{zone}]

normalize_offer() is pure and total: no I/O, no clock, no randomness, and a
malformed sub-structure degrades only the field it feeds.
"""
from typing import Any, Dict, Optional, Tuple

from korvalia.core.logging import get_logger
from korvalia.schemas.property_schema import NormalizedProperty, Number, Operation
from korvalia.services.extractors import (
    as_optional_text,
    as_text,
    count_videos,
    extract_address_component,
    extract_any_boolean_feature,
    extract_first_named_value,
    extract_image_urls,
    extract_localized_text,
    extract_numeric,
    extract_video_urls,
    find_named_entry,
    first_of,
)
from korvalia.services.slug_service import generate_canonical_url, slug_from_url

logger = get_logger(__name__)


DEFAULT_COUNTRY = "España"
CURRENCY = "EUR"

RENT_MODE_MARKER = "alquiler"

# Ordem fixa: Venta antes de Alquiler, independentemente da operação
PRICE_LABELS = ("Venta", "Alquiler")
PRICE_TYPE_MARKER = "price"

BUILT_AREA_MARKERS = ("construida",)
USABLE_AREA_MARKERS = ("útil", "util")
PLOT_AREA_MARKERS = ("parcela", "terreno")

ROOM_LABELS = ("Hab.", "Habitaciones")
BATHROOM_LABELS = ("Baños",)
FLOOR_LABELS = ("Planta",)

# Ausente e "não" colapsam em False: o feed não distingue os dois casos
AMENITY_LABELS = {
    "has_elevator": ("Ascensor",),
    "has_garage": ("Garaje propio", "Garaje comunitario"),
    "has_pool": ("Piscina", "Piscina comunitaria"),
    "has_terrace": ("Terraza",),
    "has_garden": ("Jardín",),
}


def resolve_features(features: Any) -> Dict[str, Any]:
    """The listing endpoint sometimes sends features as a bare count; treat that as empty."""
    return features if isinstance(features, dict) else {}


def parse_operation(mode_name: Any) -> Operation:
    """Binary classifier with a SALE-biased default."""
    if isinstance(mode_name, str) and RENT_MODE_MARKER in mode_name.lower():
        return Operation.RENT
    return Operation.SALE


def extract_price(features: Dict[str, Any]) -> Number:
    """Venta first, then Alquiler, then the first entry typed as a price, else 0."""
    prices = features.get("prices")
    if not isinstance(prices, list):
        return 0

    for label in PRICE_LABELS:
        entry = find_named_entry(prices, label)
        if entry is not None and entry.get("value"):
            return extract_numeric(entry.get("value")) or 0

    for entry in prices:
        if isinstance(entry, dict) and entry.get("value") and entry.get("type") == PRICE_TYPE_MARKER:
            return extract_numeric(entry.get("value")) or 0

    return 0


def extract_areas(features: Dict[str, Any]) -> Tuple[Optional[Number], Optional[Number], Optional[Number]]:
    """Return (area, area_built, area_plot). The plot area is never the canonical area."""
    area: Optional[Number] = None
    area_built: Optional[Number] = None
    area_plot: Optional[Number] = None

    areas = features.get("areas")
    if not isinstance(areas, list):
        return area, area_built, area_plot

    for item in areas:
        if not isinstance(item, dict):
            continue
        value = extract_numeric(item.get("value"))
        if not value:
            continue

        name = item.get("name")
        label = name.lower() if isinstance(name, str) else ""
        if any(marker in label for marker in BUILT_AREA_MARKERS):
            area_built = value
            area = value
        elif any(marker in label for marker in USABLE_AREA_MARKERS):
            if not area:
                area = value
        elif any(marker in label for marker in PLOT_AREA_MARKERS):
            area_plot = value

    return area, area_built, area_plot


def normalize_offer(raw: Any) -> NormalizedProperty:
    """Normalize one raw Emblematic offer into the canonical NormalizedProperty."""
    if not isinstance(raw, dict):
        logger.debug("Offer payload is not an object (%s), normalizing as empty", type(raw).__name__)
    offer: Dict[str, Any] = raw if isinstance(raw, dict) else {}

    address = first_of(offer.get("address"))
    features = resolve_features(offer.get("features"))
    more_features = features.get("more_features")

    area, area_built, area_plot = extract_areas(features)
    canonical_url = generate_canonical_url(offer)

    return NormalizedProperty(
        reference=as_text(offer.get("reference")),
        slug=slug_from_url(canonical_url),
        canonical_url=canonical_url,
        title=as_text(offer.get("title")),
        description=extract_localized_text(offer.get("description")),
        price=extract_price(features),
        currency=CURRENCY,
        operation=parse_operation(offer.get("mode_name")),
        property_type=as_text(offer.get("type_name")),
        property_subtype=as_text(offer.get("subtype_name")),
        city=extract_address_component(address, "city"),
        zone=extract_address_component(address, "zone") or None,
        region=extract_address_component(address, "region"),
        country=extract_address_component(address, "country") or DEFAULT_COUNTRY,
        latitude=extract_numeric(offer.get("latitude")),
        longitude=extract_numeric(offer.get("longitude")),
        area=area,
        area_built=area_built,
        area_plot=area_plot,
        rooms=extract_first_named_value(more_features, ROOM_LABELS),
        bathrooms=extract_first_named_value(more_features, BATHROOM_LABELS),
        floor=extract_first_named_value(more_features, FLOOR_LABELS),
        **{
            flag: extract_any_boolean_feature(features, labels)
            for flag, labels in AMENITY_LABELS.items()
        },
        energy_rating=as_optional_text(offer.get("energy_rating_consumption_letter")),
        energy_consumption=extract_numeric(offer.get("energy_rating_consumption")),
        energy_emissions=extract_numeric(offer.get("energy_rating_emissions")),
        energy_emissions_rating=as_optional_text(offer.get("energy_rating_emissions_letter")),
        images=extract_image_urls(offer.get("images")),
        virtual_tour=as_optional_text(offer.get("virtual_tour")),
        videos=extract_video_urls(offer.get("videos")),
        videos_count=count_videos(offer.get("videos")),
        is_vpo=offer.get("is_vpo") is True,
    )


def normalize_offers(raw_offers: Any) -> list[NormalizedProperty]:
    """Normalize a batch; one malformed offer only degrades its own fields."""
    if not isinstance(raw_offers, list):
        return []
    return [normalize_offer(offer) for offer in raw_offers]
