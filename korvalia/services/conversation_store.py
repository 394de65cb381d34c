"""Conversation store: persistence of chat sessions and their message log.

The chatbot only talks to the ConversationStore interface:
- InMemoryConversationStore: process-local dicts (tests, local development)
- SqlConversationStore: SQLAlchemy async session (production)

Both return the pydantic schemas from chat_schema, never ORM rows.
"""
import itertools
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from korvalia.core.exceptions import NotFoundError
from korvalia.core.logging import get_logger
from korvalia.models.chat_model import ChatConversation as ConversationRow
from korvalia.models.chat_model import ChatMessage as MessageRow
from korvalia.schemas.chat_schema import (
    ChatMessage,
    ChatStatus,
    Conversation,
    ConversationDetail,
    ConversationList,
    ConversationSummary,
    MessageRole,
)

logger = get_logger(__name__)

SOURCE_WIDGET = "widget"
SOURCE_PROPERTY_PAGE = "property_page"
DEFAULT_PAGE_SIZE = 20


def _source_for(property_id: Optional[int]) -> str:
    return SOURCE_PROPERTY_PAGE if property_id else SOURCE_WIDGET


class ConversationStore(ABC):
    """Repository interface used by the chatbot and the admin endpoints."""

    @abstractmethod
    async def load_session(self, session_id: str, property_id: Optional[int] = None) -> Conversation:
        """Return the conversation for a session, creating it on first contact."""

    @abstractmethod
    async def append_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatMessage:
        ...

    @abstractmethod
    async def update_status(
        self,
        conversation_id: str,
        status: ChatStatus,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Conversation:
        """Set the status; visitor fields are only overwritten when a new value is given."""

    @abstractmethod
    async def get_history(self, session_id: str) -> List[ChatMessage]:
        """Messages of a session in creation order; empty for unknown sessions."""

    @abstractmethod
    async def save_visitor_contact(
        self,
        session_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Conversation:
        ...

    @abstractmethod
    async def list_conversations(
        self,
        status: Optional[ChatStatus] = None,
        has_contact: bool = False,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> ConversationList:
        ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[ConversationDetail]:
        ...

    @abstractmethod
    async def set_status(self, conversation_id: str, status: ChatStatus) -> Conversation:
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryConversationStore(ConversationStore):
    """Dict-backed store. Not shared between processes."""

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._by_session: Dict[str, str] = {}
        self._messages: Dict[str, List[ChatMessage]] = {}
        self._ids = itertools.count(1)

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    def _save(self, conversation: Conversation, **changes: Any) -> Conversation:
        updated = conversation.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
        self._conversations[updated.id] = updated
        return updated

    async def load_session(self, session_id: str, property_id: Optional[int] = None) -> Conversation:
        conversation_id = self._by_session.get(session_id)
        if conversation_id is not None:
            return self._conversations[conversation_id]

        now = datetime.now(timezone.utc)
        conversation = Conversation(
            id=str(uuid.uuid4()),
            session_id=session_id,
            property_id=property_id,
            source=_source_for(property_id),
            created_at=now,
            updated_at=now,
        )
        self._conversations[conversation.id] = conversation
        self._by_session[session_id] = conversation.id
        self._messages[conversation.id] = []
        logger.info("New chat session", extra={"session_id": session_id})
        return conversation

    async def append_message(self, conversation_id, role, content, metadata=None) -> ChatMessage:
        self._require(conversation_id)
        message = ChatMessage(
            id=next(self._ids),
            role=role,
            content=content,
            metadata=metadata,
            created_at=datetime.now(timezone.utc),
        )
        self._messages[conversation_id].append(message)
        return message

    async def update_status(self, conversation_id, status, name=None, email=None, phone=None) -> Conversation:
        conversation = self._require(conversation_id)
        return self._save(
            conversation,
            status=status,
            visitor_name=name or conversation.visitor_name,
            visitor_email=email or conversation.visitor_email,
            visitor_phone=phone or conversation.visitor_phone,
        )

    async def get_history(self, session_id: str) -> List[ChatMessage]:
        conversation_id = self._by_session.get(session_id)
        if conversation_id is None:
            return []
        return list(self._messages[conversation_id])

    async def save_visitor_contact(self, session_id, name=None, email=None, phone=None) -> Conversation:
        conversation_id = self._by_session.get(session_id)
        if conversation_id is None:
            raise NotFoundError(f"Chat session {session_id} not found")
        return self._save(
            self._conversations[conversation_id],
            visitor_name=name,
            visitor_email=email,
            visitor_phone=phone,
            status=ChatStatus.LEAD_CAPTURED,
        )

    async def list_conversations(self, status=None, has_contact=False, limit=DEFAULT_PAGE_SIZE, offset=0) -> ConversationList:
        matches = [
            c for c in self._conversations.values()
            if (status is None or c.status == status)
            and (not has_contact or c.visitor_email or c.visitor_phone)
        ]
        matches.sort(key=lambda c: c.updated_at, reverse=True)

        summaries = []
        for conversation in matches[offset:offset + limit]:
            messages = self._messages[conversation.id]
            summaries.append(
                ConversationSummary(
                    **conversation.model_dump(),
                    last_message=messages[-1].content if messages else "",
                    message_count=len(messages),
                )
            )
        return ConversationList(conversations=summaries, total=len(matches))

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationDetail]:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        return ConversationDetail(**conversation.model_dump(), messages=list(self._messages[conversation_id]))

    async def set_status(self, conversation_id: str, status: ChatStatus) -> Conversation:
        return self._save(self._require(conversation_id), status=status)


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def _to_conversation(row: ConversationRow) -> Conversation:
    return Conversation(
        id=row.id,
        session_id=row.session_id,
        visitor_name=row.visitor_name,
        visitor_email=row.visitor_email,
        visitor_phone=row.visitor_phone,
        status=row.status,
        source=row.source,
        property_id=row.property_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_message(row: MessageRow) -> ChatMessage:
    return ChatMessage(
        id=row.id,
        role=row.role,
        content=row.content,
        metadata=row.meta,
        created_at=row.created_at,
    )


class SqlConversationStore(ConversationStore):
    """Store backed by the chat_conversations / chat_messages tables.

    Only flushes; the request-scoped session (api.deps.get_db) commits.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, conversation_id: str) -> ConversationRow:
        row = await self.db.get(ConversationRow, conversation_id)
        if row is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return row

    async def _get_by_session(self, session_id: str) -> Optional[ConversationRow]:
        query = select(ConversationRow).where(ConversationRow.session_id == session_id)
        return (await self.db.execute(query)).scalar_one_or_none()

    async def _messages_of(self, conversation_id: str) -> List[ChatMessage]:
        query = select(MessageRow).where(MessageRow.conversation_id == conversation_id).order_by(MessageRow.id)
        return [_to_message(row) for row in (await self.db.execute(query)).scalars().all()]

    async def load_session(self, session_id: str, property_id: Optional[int] = None) -> Conversation:
        row = await self._get_by_session(session_id)
        if row is None:
            row = ConversationRow(
                session_id=session_id,
                property_id=property_id,
                source=_source_for(property_id),
                status=ChatStatus.ACTIVE.value,
            )
            self.db.add(row)
            await self.db.flush()
            await self.db.refresh(row)
            logger.info("New chat session", extra={"session_id": session_id})
        return _to_conversation(row)

    async def append_message(self, conversation_id, role, content, metadata=None) -> ChatMessage:
        row = MessageRow(
            conversation_id=conversation_id,
            role=MessageRole(role).value,
            content=content,
            meta=metadata,
        )
        self.db.add(row)
        await self.db.flush()
        await self.db.refresh(row)
        return _to_message(row)

    async def update_status(self, conversation_id, status, name=None, email=None, phone=None) -> Conversation:
        row = await self._get_row(conversation_id)
        row.status = ChatStatus(status).value
        row.visitor_name = name or row.visitor_name
        row.visitor_email = email or row.visitor_email
        row.visitor_phone = phone or row.visitor_phone
        await self.db.flush()
        await self.db.refresh(row)
        return _to_conversation(row)

    async def get_history(self, session_id: str) -> List[ChatMessage]:
        row = await self._get_by_session(session_id)
        if row is None:
            return []
        return await self._messages_of(row.id)

    async def save_visitor_contact(self, session_id, name=None, email=None, phone=None) -> Conversation:
        row = await self._get_by_session(session_id)
        if row is None:
            raise NotFoundError(f"Chat session {session_id} not found")
        row.visitor_name = name
        row.visitor_email = email
        row.visitor_phone = phone
        row.status = ChatStatus.LEAD_CAPTURED.value
        await self.db.flush()
        await self.db.refresh(row)
        return _to_conversation(row)

    async def list_conversations(self, status=None, has_contact=False, limit=DEFAULT_PAGE_SIZE, offset=0) -> ConversationList:
        filters = []
        if status is not None:
            filters.append(ConversationRow.status == ChatStatus(status).value)
        if has_contact:
            filters.append(or_(ConversationRow.visitor_email.isnot(None), ConversationRow.visitor_phone.isnot(None)))

        total: int = (await self.db.execute(
            select(func.count(ConversationRow.id)).where(*filters)
        )).scalar_one()

        rows = (await self.db.execute(
            select(ConversationRow)
            .where(*filters)
            .order_by(ConversationRow.updated_at.desc())
            .offset(offset)
            .limit(limit)
        )).scalars().all()

        ids = [row.id for row in rows]
        counts: Dict[str, int] = {}
        last_messages: Dict[str, str] = {}
        if ids:
            count_rows = (await self.db.execute(
                select(MessageRow.conversation_id, func.count(MessageRow.id))
                .where(MessageRow.conversation_id.in_(ids))
                .group_by(MessageRow.conversation_id)
            )).all()
            counts = {r[0]: r[1] for r in count_rows}

            latest_ids = (
                select(func.max(MessageRow.id))
                .where(MessageRow.conversation_id.in_(ids))
                .group_by(MessageRow.conversation_id)
            )
            latest_rows = (await self.db.execute(
                select(MessageRow.conversation_id, MessageRow.content).where(MessageRow.id.in_(latest_ids))
            )).all()
            last_messages = {r[0]: r[1] for r in latest_rows}

        summaries = [
            ConversationSummary(
                **_to_conversation(row).model_dump(),
                last_message=last_messages.get(row.id, ""),
                message_count=counts.get(row.id, 0),
            )
            for row in rows
        ]
        return ConversationList(conversations=summaries, total=total)

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationDetail]:
        row = await self.db.get(ConversationRow, conversation_id)
        if row is None:
            return None
        return ConversationDetail(
            **_to_conversation(row).model_dump(),
            messages=await self._messages_of(row.id),
        )

    async def set_status(self, conversation_id: str, status: ChatStatus) -> Conversation:
        row = await self._get_row(conversation_id)
        row.status = ChatStatus(status).value
        await self.db.flush()
        await self.db.refresh(row)
        return _to_conversation(row)
