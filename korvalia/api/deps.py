"""API dependencies: database session, Emblematic client and chat services."""
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from korvalia.database import async_session_factory
from korvalia.services.chatbot_service import ChatbotService
from korvalia.services.conversation_store import ConversationStore, SqlConversationStore
from korvalia.services.emblematic_client import EmblematicClient


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for request scope."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_emblematic_client() -> AsyncGenerator[EmblematicClient, None]:
    """One client (and connection pool) per request, closed afterwards."""
    client = EmblematicClient()
    try:
        yield client
    finally:
        await client.aclose()


def get_conversation_store(db: AsyncSession = Depends(get_db)) -> ConversationStore:
    return SqlConversationStore(db)


def get_chatbot_service(
    store: ConversationStore = Depends(get_conversation_store),
    client: EmblematicClient = Depends(get_emblematic_client),
) -> ChatbotService:
    return ChatbotService(store, client)
