"""Emblematic API router: normalized CRM properties for the website.
/api/v1/emblematic"""
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from korvalia.api.deps import get_emblematic_client
from korvalia.api.responses import ok
from korvalia.config import settings
from korvalia.core.exceptions import NotFoundError
from korvalia.schemas.base_schema import ApiResponse, Meta
from korvalia.schemas.emblematic_schema import DEFAULT_LISTS, ListName, SearchFilters
from korvalia.schemas.property_schema import CityCount, FeaturedProperties, NormalizedProperty, PropertyPage
from korvalia.services import property_service
from korvalia.services.emblematic_client import EmblematicClient

router = APIRouter()


@router.get("/config", response_model=ApiResponse[Dict[str, Any]])
async def get_config(request: Request):
    """Public integration settings, so the frontend knows whether the CRM is enabled."""
    return ok(
        {"enabled": bool(settings.emblematic_token), "apiUrl": settings.emblematic_api_url},
        "Emblematic config",
        request,
    )


@router.get("/status", response_model=ApiResponse[Dict[str, Any]])
async def get_status(request: Request, client: EmblematicClient = Depends(get_emblematic_client)):
    status = await client.check_status()
    return ok({"configured": True, "status": status}, "Emblematic is reachable", request)


@router.get("/lists", response_model=ApiResponse[Dict[str, Any]])
async def get_lists(
    request: Request,
    lists: Optional[List[ListName]] = Query(None, description="Lists to fetch, e.g. ?lists=modes&lists=cities"),
    country_id: Optional[int] = Query(None),
    region_id: Optional[int] = Query(None),
    city_id: Optional[int] = Query(None),
    client: EmblematicClient = Depends(get_emblematic_client),
):
    """Dynamic filter values (modes, types, subtypes, geography...)."""
    data = await client.get_lists(
        lists=list(lists) if lists else DEFAULT_LISTS,
        country_id=country_id,
        region_id=region_id,
        city_id=city_id,
    )
    return ok(data, "Lists fetched", request)


@router.get("/properties", response_model=ApiResponse[PropertyPage])
async def list_properties(
    request: Request,
    page: int = Query(1, ge=1),
    mode_id: Optional[int] = Query(None),
    type_id: Optional[int] = Query(None),
    subtype_id: Optional[int] = Query(None),
    country_id: Optional[int] = Query(None),
    region_id: Optional[int] = Query(None),
    city_id: Optional[int] = Query(None),
    zone_id: Optional[int] = Query(None),
    price_min: Optional[float] = Query(None, ge=0),
    price_max: Optional[float] = Query(None, ge=0),
    rooms: Optional[int] = Query(None, ge=0),
    bathrooms: Optional[int] = Query(None, ge=0),
    area_min: Optional[float] = Query(None, ge=0),
    area_max: Optional[float] = Query(None, ge=0),
    order_key: Optional[Literal["offer_became_day", "reference"]] = Query(None),
    order_direction: Optional[Literal["asc", "desc"]] = Query(None),
    city: Optional[str] = Query(None, description="City name, matched ignoring case and accents"),
    client: EmblematicClient = Depends(get_emblematic_client),
):
    """Paginated, normalized offers. `city` is applied to the fetched page only."""
    filters = SearchFilters(
        mode_id=mode_id,
        type_id=type_id,
        subtype_id=subtype_id,
        country_id=country_id,
        region_id=region_id,
        city_id=city_id,
        zone_id=zone_id,
        feature_price_from=price_min,
        feature_price_to=price_max,
        rooms=rooms,
        bathrooms=bathrooms,
        feature_area_from=area_min,
        feature_area_to=area_max,
        order_key=order_key,
        order_direction=order_direction,
    )
    result = await property_service.get_properties(client, filters, page=page, city=city)
    meta = Meta(
        page=result.current_page,
        page_size=result.per_page,
        total=result.total,
        last_page=result.last_page,
    )
    return ok(result, f"{len(result.properties)} properties", request, meta)


# Rotas fixas antes de /properties/{reference}
@router.get("/properties/featured", response_model=ApiResponse[FeaturedProperties])
async def featured_properties(request: Request, client: EmblematicClient = Depends(get_emblematic_client)):
    result = await property_service.get_featured_properties(client)
    return ok(result, "Featured properties", request)


@router.get("/properties/{reference}", response_model=ApiResponse[NormalizedProperty])
async def get_property(reference: str, request: Request, client: EmblematicClient = Depends(get_emblematic_client)):
    prop = await property_service.get_property_by_reference(client, reference)
    if prop is None:
        raise NotFoundError(f"Propiedad con referencia {reference} no encontrada")
    return ok(prop, "Property found", request)


@router.get("/cities", response_model=ApiResponse[List[CityCount]])
async def available_cities(request: Request, client: EmblematicClient = Depends(get_emblematic_client)):
    """Cities that currently have offers, with counts."""
    cities = await property_service.get_available_cities(client)
    return ok(cities, f"{len(cities)} cities", request)
