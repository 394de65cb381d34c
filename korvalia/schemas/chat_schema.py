"""Pydantic schemas for the chatbot API and the conversation store."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

from korvalia.schemas.property_schema import Number, Operation


class ChatStatus(str, Enum):
    ACTIVE = "ACTIVE"
    LEAD_CAPTURED = "LEAD_CAPTURED"
    CLOSED = "CLOSED"
    ESCALATED = "ESCALATED"


class MessageRole(str, Enum):
    USER = "USER"
    BOT = "BOT"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ChatRequest(CamelModel):
    session_id: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=2000)
    property_id: Optional[int] = None


class PropertyCard(CamelModel):
    """Compact property payload attached to chatbot replies."""
    id: str
    reference: str
    title: str
    slug: str
    price: Number
    operation: Operation
    property_type: str
    bedrooms: Optional[Number] = None
    bathrooms: Optional[Number] = None
    area_m2: Optional[Number] = Field(None, alias="areaM2")
    city: str
    image: Optional[str] = None
    canonical_url: str


class ChatResponse(CamelModel):
    message: str
    suggestions: Optional[List[str]] = None
    properties: Optional[List[PropertyCard]] = None
    ask_for_contact: Optional[bool] = None


class ChatMessage(CamelModel):
    id: Optional[Union[int, str]] = None
    role: MessageRole
    content: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class Conversation(CamelModel):
    id: str
    session_id: str
    visitor_name: Optional[str] = None
    visitor_email: Optional[str] = None
    visitor_phone: Optional[str] = None
    status: ChatStatus = ChatStatus.ACTIVE
    source: str = "widget"
    property_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class ConversationDetail(Conversation):
    messages: List[ChatMessage] = []


class ConversationSummary(Conversation):
    last_message: str = ""
    message_count: int = 0


class ConversationList(CamelModel):
    conversations: List[ConversationSummary]
    total: int


class ContactCreate(CamelModel):
    session_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None

    @model_validator(mode="after")
    def require_email_or_phone(self):
        if not self.email and not self.phone:
            raise ValueError("Se requiere al menos email o teléfono")
        return self


class StatusUpdate(BaseModel):
    status: ChatStatus
