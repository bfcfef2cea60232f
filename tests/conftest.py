"""Shared test fixtures."""

from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from gamenight.config import Settings
from gamenight.core.errors import TransportError
from gamenight.core.resolver import IdentityResolver
from gamenight.db.engine import create_engine, create_tables, get_session
from gamenight.db.repository import Repository
from gamenight.discord.transport import SentMessage
from gamenight.main import create_app

STEAM_API = "https://steam.test/api"
PORTAL_URL = "https://store.steampowered.com/app/620/Portal_2/"
PORTAL_HEADER = "https://cdn.test/steam/620/header.jpg"


class FakeTransport:
    """In-memory MessageTransport that records every call.

    ``fail_edits`` maps a message id to the error its next edit raises.
    ``originals`` maps an interaction token to where its response landed.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []
        self.edits: list[tuple[str, str, dict]] = []
        self.deleted: list[tuple[str, str]] = []
        self.original_edits: list[tuple[str, dict]] = []
        self.fail_edits: dict[str, TransportError] = {}
        self.originals: dict[str, SentMessage] = {}
        self._counter = 0

    async def send(self, channel_id: str, payload: dict) -> SentMessage:
        self._counter += 1
        self.sent.append((channel_id, payload))
        return SentMessage(message_id=f"sent-{self._counter}", channel_id=channel_id)

    async def edit(self, channel_id: str, message_id: str, payload: dict) -> None:
        if message_id in self.fail_edits:
            raise self.fail_edits[message_id]
        self.edits.append((channel_id, message_id, payload))

    async def delete(self, channel_id: str, message_id: str) -> None:
        self.deleted.append((channel_id, message_id))

    async def get_original(self, interaction_token: str) -> SentMessage:
        return self.originals.setdefault(
            interaction_token,
            SentMessage(message_id=f"orig-{interaction_token}", channel_id="chan-1"),
        )

    async def edit_original(self, interaction_token: str, payload: dict) -> SentMessage:
        self.original_edits.append((interaction_token, payload))
        return await self.get_original(interaction_token)


def steam_handler(request: httpx.Request) -> httpx.Response:
    """Steam appdetails stub: app 620 is known, everything else is unsuccessful."""
    app_id = request.url.params.get("appids", "")
    if app_id == "620":
        return httpx.Response(
            200,
            json={
                "620": {
                    "success": True,
                    "data": {"name": "Portal 2", "header_image": PORTAL_HEADER},
                }
            },
        )
    return httpx.Response(200, json={app_id: {"success": False}})


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults."""
    return Settings(
        gamenight_env="development",
        database_url="sqlite+aiosqlite:///:memory:",
        gamenight_verify_signatures=False,
        discord_application_id="app-1",
        steam_api_base=STEAM_API,
    )


@pytest.fixture
async def engine() -> AsyncEngine:
    """Create an in-memory SQLite engine with all tables."""
    eng = create_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
async def repo(engine: AsyncEngine) -> Repository:
    """Yield a repository with a session bound to the in-memory database."""
    async with get_session(engine) as session:
        yield Repository(session)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
async def resolver() -> IdentityResolver:
    client = httpx.AsyncClient(transport=httpx.MockTransport(steam_handler))
    yield IdentityResolver(client, STEAM_API)
    await client.aclose()


@pytest.fixture
async def client(
    settings: Settings,
    engine: AsyncEngine,
    transport: FakeTransport,
    resolver: IdentityResolver,
) -> AsyncClient:
    """HTTP client against the app, with state wired to the test fakes."""
    application = create_app(settings)
    application.state.engine = engine
    application.state.transport = transport
    application.state.resolver = resolver
    async with AsyncClient(
        transport=ASGITransport(app=application), base_url="http://test"
    ) as http:
        yield http
