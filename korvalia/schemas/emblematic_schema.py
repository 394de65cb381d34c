"""Pydantic schemas for the Emblematic CRM contract (query filters and raw envelopes)."""
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

ListName = Literal[
    "modes",
    "types",
    "subtypes",
    "features",
    "countries",
    "regions",
    "cities",
    "zones",
    "roadTypes",
]

DEFAULT_LISTS: List[str] = ["modes", "types", "subtypes"]


class SearchFilters(BaseModel):
    """Typed filters for GET /offers/{page}. Unset fields are not sent upstream."""
    order_key: Optional[Literal["offer_became_day", "reference"]] = None
    order_direction: Optional[Literal["asc", "desc"]] = None
    reference: Optional[Union[str, List[str]]] = None
    mode_id: Optional[int] = None
    type_id: Optional[int] = None
    subtype_id: Optional[int] = None
    country_id: Optional[int] = None
    region_id: Optional[int] = None
    city_id: Optional[int] = None
    zone_id: Optional[int] = None
    feature_area_from: Optional[float] = None
    feature_area_to: Optional[float] = None
    feature_area_built_from: Optional[float] = None
    feature_area_built_to: Optional[float] = None
    feature_area_plot_to: Optional[float] = None
    feature_price_from: Optional[float] = None
    feature_price_to: Optional[float] = None
    rooms: Optional[int] = None
    bathrooms: Optional[int] = None
    features: Optional[List[int]] = Field(None, description="Feature ids, sent as features[]")

    def to_query(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class OffersPage(BaseModel):
    """Raw paginated envelope returned by /offers/{page}. Offers stay untyped."""
    total: int = 0
    per_page: int = 0
    current_page: int = 1
    last_page: int = 1
    offers: List[Dict[str, Any]] = []


class FeaturedBundle(BaseModel):
    """Raw /offers/featured response."""
    featured: List[Dict[str, Any]] = []
    latest: List[Dict[str, Any]] = []
    footer: List[Dict[str, Any]] = []
