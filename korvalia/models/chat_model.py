"""Chat SQLAlchemy models: widget conversations and their message log."""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from korvalia.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatConversation(Base):
    __tablename__ = "chat_conversations"

    # UUID em texto: funciona igual em Postgres e SQLite
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id: Mapped[str] = mapped_column(String(100), unique=True, comment="Widget session identifier")

    visitor_name: Mapped[Optional[str]] = mapped_column(String(255))
    visitor_email: Mapped[Optional[str]] = mapped_column(String(255))
    visitor_phone: Mapped[Optional[str]] = mapped_column(String(50))

    status: Mapped[str] = mapped_column(String(20), default="ACTIVE", comment="ACTIVE, LEAD_CAPTURED, CLOSED, ESCALATED")
    source: Mapped[str] = mapped_column(String(20), default="widget", comment="widget, property_page")
    property_id: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    messages: Mapped[List["ChatMessage"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ChatMessage.id",
    )

    __table_args__ = (
        Index("ix_chat_conversations_status", "status"),
        Index("ix_chat_conversations_updated_at", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<ChatConversation(id={self.id}, session='{self.session_id}', status={self.status})>"


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    # Autoincremento garante a ordem de criação das mensagens
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("chat_conversations.id", ondelete="CASCADE"),
        index=True,
    )
    role: Mapped[str] = mapped_column(String(10), comment="USER, BOT")
    content: Mapped[str] = mapped_column(Text)
    # "metadata" é reservado pelo DeclarativeBase
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    conversation: Mapped["ChatConversation"] = relationship(back_populates="messages")

    def __repr__(self) -> str:
        return f"<ChatMessage(id={self.id}, role={self.role}, content='{self.content[:40]}')>"
