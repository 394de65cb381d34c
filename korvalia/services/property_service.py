"""Property service: normalized views over the Emblematic client.

Every function takes an EmblematicClient and returns canonical
NormalizedProperty values (via mapper_service). Upstream errors propagate to
the caller; the only swallowed failure is the documented featured fallback.
"""
from typing import Dict, List, Optional

from korvalia.core.exceptions import EmblematicError
from korvalia.core.logging import get_logger
from korvalia.schemas.emblematic_schema import SearchFilters
from korvalia.schemas.property_schema import (
    CityCount,
    FeaturedProperties,
    NormalizedProperty,
    Operation,
    PropertyPage,
)
from korvalia.services.emblematic_client import EmblematicClient
from korvalia.services.mapper_service import normalize_offer, normalize_offers
from korvalia.services.slug_service import strip_accents

logger = get_logger(__name__)

# mode_id do CRM para cada operação
OPERATION_MODE_IDS: Dict[Operation, int] = {
    Operation.SALE: 1,
    Operation.RENT: 2,
}


def _fold(text: str) -> str:
    return strip_accents(text.lower())


def filter_by_city(properties: List[NormalizedProperty], city: str) -> List[NormalizedProperty]:
    """Keep properties whose city equals `city`, ignoring case and accents."""
    target = _fold(city)
    return [p for p in properties if p.city and _fold(p.city) == target]


async def get_properties(
    client: EmblematicClient,
    filters: Optional[SearchFilters] = None,
    page: int = 1,
    city: Optional[str] = None,
) -> PropertyPage:
    """Normalized page of offers. A city name filter is applied after the fetch."""
    response = await client.get_offers(filters, page=page)
    result = PropertyPage(
        total=response.total,
        per_page=response.per_page,
        current_page=response.current_page,
        last_page=response.last_page,
        properties=normalize_offers(response.offers),
    )

    if city:
        before = len(result.properties)
        result.properties = filter_by_city(result.properties, city)
        result.total = len(result.properties)
        logger.info("City filter '%s' applied: %d -> %d properties", city, before, result.total)

    return result


async def get_property_by_reference(client: EmblematicClient, reference: str) -> Optional[NormalizedProperty]:
    offer = await client.get_offer_by_reference(reference)
    if offer is None:
        return None
    return normalize_offer(offer)


async def get_featured_properties(client: EmblematicClient) -> FeaturedProperties:
    """Featured, latest and footer offers.

    When the CRM has neither featured nor latest offers, page 1 of the listing
    is served as "latest" instead. If that fallback also fails the lists stay
    empty: degraded, not an error.
    """
    bundle = await client.get_featured()
    result = FeaturedProperties(
        featured=normalize_offers(bundle.featured),
        latest=normalize_offers(bundle.latest),
        footer=normalize_offers(bundle.footer),
    )

    if not result.featured and not result.latest:
        logger.info("No featured properties found, falling back to the regular offers listing")
        try:
            offers = await client.get_offers(page=1)
        except EmblematicError as exc:
            logger.warning(
                "Featured fallback failed: %s",
                exc.message,
                extra={"status_code": getattr(exc, "status_code", None)},
            )
            return result
        result.latest = normalize_offers(offers.offers)
        logger.info("Using %d properties from the offers listing as latest", len(result.latest))

    return result


async def search_properties(
    client: EmblematicClient,
    operation: Optional[Operation] = None,
    subtype_id: Optional[int] = None,
    price_min: Optional[float] = None,
    price_max: Optional[float] = None,
    rooms: Optional[int] = None,
    bathrooms: Optional[int] = None,
    page: int = 1,
) -> PropertyPage:
    """Search with friendly filters, translated to Emblematic query parameters."""
    filters = SearchFilters(
        mode_id=OPERATION_MODE_IDS.get(operation) if operation else None,
        subtype_id=subtype_id,
        feature_price_from=price_min or None,
        feature_price_to=price_max or None,
        rooms=rooms or None,
        bathrooms=bathrooms or None,
    )
    return await get_properties(client, filters, page=page)


async def get_available_cities(client: EmblematicClient) -> List[CityCount]:
    """Unique city names (with offer counts) across every listing page, sorted by name.

    The CRM has no city listing of its own, so cities are derived from offers.
    """
    first_page = await client.get_offers(page=1)
    offers = list(first_page.offers)
    for page in range(2, first_page.last_page + 1):
        page_data = await client.get_offers(page=page)
        offers.extend(page_data.offers)

    counts: Dict[str, int] = {}
    for prop in normalize_offers(offers):
        name = prop.city.strip()
        if name:
            counts[name] = counts.get(name, 0) + 1

    cities = [
        CityCount(name=name, count=count)
        for name, count in sorted(counts.items(), key=lambda item: (_fold(item[0]), item[0]))
    ]
    logger.info("Available cities: %s", ", ".join(c.name for c in cities))
    return cities
