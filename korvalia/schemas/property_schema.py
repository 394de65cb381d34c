"""Canonical NormalizedProperty: the stable shape of an Emblematic offer.

This schema represents the normalized, strongly-typed internal representation
of a listing coming from the CRM. It is request-scoped: recomputed from the raw
offer on every fetch and never persisted. JSON keys are camelCase because the
frontend consumes them directly.
"""
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Number = Union[int, float]


class Operation(str, Enum):
    SALE = "SALE"
    RENT = "RENT"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NormalizedProperty(CamelModel):
    """Canonical property: partner-agnostic, never raises on construction from the mapper."""
    reference: str = ""
    slug: str = ""
    canonical_url: str = ""

    title: str = ""
    description: str = ""

    price: Number = 0
    currency: str = "EUR"
    operation: Operation = Operation.SALE

    property_type: str = ""
    property_subtype: str = ""

    # Ubicação
    city: str = ""
    zone: Optional[str] = None
    region: str = ""
    country: str = "España"
    latitude: Optional[Number] = None
    longitude: Optional[Number] = None

    # Características
    area: Optional[Number] = None
    area_built: Optional[Number] = None
    area_plot: Optional[Number] = None
    rooms: Optional[Number] = None
    bathrooms: Optional[Number] = None
    floor: Optional[Number] = None
    has_elevator: bool = False
    has_garage: bool = False
    has_pool: bool = False
    has_terrace: bool = False
    has_garden: bool = False

    # Certificado energético
    energy_rating: Optional[str] = None
    energy_consumption: Optional[Number] = None
    energy_emissions: Optional[Number] = None
    energy_emissions_rating: Optional[str] = None

    # Media
    images: List[str] = []
    virtual_tour: Optional[str] = None
    videos: List[str] = []
    videos_count: int = 0

    is_vpo: bool = Field(False, alias="isVPO")


class PropertyPage(CamelModel):
    """Normalized page of offers (mirror of the upstream envelope)."""
    total: int = 0
    per_page: int = 0
    current_page: int = 1
    last_page: int = 1
    properties: List[NormalizedProperty] = []


class FeaturedProperties(CamelModel):
    featured: List[NormalizedProperty] = []
    latest: List[NormalizedProperty] = []
    footer: List[NormalizedProperty] = []


class CityCount(BaseModel):
    name: str
    count: int
