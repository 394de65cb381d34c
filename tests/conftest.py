"""Test fixtures: async test client, test database, fake Emblematic upstream, factories."""
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Union

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import korvalia.models  # noqa: F401
from korvalia.database import Base
from korvalia.api.deps import get_db, get_emblematic_client
from korvalia.main import app
from korvalia.services.emblematic_client import EmblematicClient


TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"
UPSTREAM_URL = "https://crm.test/api/v1"
UPSTREAM_PREFIX = "/api/v1"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


Route = Union[Dict[str, Any], List[Any], httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeEmblematic:
    """Serves canned responses per upstream path and records every request made."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(UPSTREAM_PREFIX):]
        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    @property
    def paths(self) -> List[str]:
        return [r.url.path[len(UPSTREAM_PREFIX):] for r in self.requests]

    def client(self, token: str = "test-token") -> EmblematicClient:
        return EmblematicClient(
            base_url=UPSTREAM_URL,
            token=token,
            transport=httpx.MockTransport(self.handler),
        )


def make_offer(**overrides) -> dict:
    """Create a raw Emblematic offer as the listing endpoint returns it."""
    defaults = {
        "reference": "R1",
        "title": "Piso luminoso en el centro",
        "description": {"es": "Piso reformado con terraza.", "en": "Refurbished flat with terrace."},
        "mode_name": "Venta",
        "type_name": "Vivienda",
        "subtype_name": "Piso",
        "address": [
            {
                "city": {"name": "Cádiz"},
                "zone": [{"name": "Centro"}],
                "region": {"name": "Andalucía"},
                "country": {"name": "España"},
            }
        ],
        "features": {
            "prices": [{"name": "Venta", "value": "185000"}],
            "areas": [{"name": "Superficie construida", "value": "95"}],
            "more_features": [
                {"name": "Hab.", "value": "3"},
                {"name": "Baños", "value": 2},
                {"name": "Ascensor", "value": True},
            ],
            "qualities": [{"name": "Terraza", "value": True}],
        },
        "images": [{"thumb_800_600": "https://img.test/r1-800.jpg", "original": "https://img.test/r1.jpg"}],
        "videos": [],
        "latitude": "36.5297",
        "longitude": "-6.2925",
        "energy_rating_consumption_letter": "D",
        "energy_rating_consumption": "145.2",
        "is_vpo": False,
    }
    defaults.update(overrides)
    return defaults


def make_offers_page(offers: List[dict], page: int = 1, last_page: int = 1, per_page: int = 20) -> dict:
    """Paginated envelope of /offers/{page}."""
    return {
        "total": len(offers) if last_page == 1 else per_page * last_page,
        "per_page": per_page,
        "current_page": page,
        "last_page": last_page,
        "offers": offers,
    }


@pytest.fixture
def upstream() -> FakeEmblematic:
    return FakeEmblematic()


@pytest_asyncio.fixture
async def emblematic(upstream: FakeEmblematic) -> AsyncGenerator[EmblematicClient, None]:
    client = upstream.client()
    yield client
    await client.aclose()


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables and yield a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with test_session_factory() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, upstream: FakeEmblematic) -> AsyncGenerator[AsyncClient, None]:
    """Yield an HTTP test client with the test DB and the fake upstream injected."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    async def override_get_emblematic_client():
        emblematic_client = upstream.client()
        try:
            yield emblematic_client
        finally:
            await emblematic_client.aclose()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_emblematic_client] = override_get_emblematic_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
