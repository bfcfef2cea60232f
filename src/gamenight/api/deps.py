"""FastAPI dependencies: app-state accessors and request signature verification."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Request
from nacl.exceptions import CryptoError
from nacl.signing import VerifyKey
from sqlalchemy.ext.asyncio import AsyncEngine

from gamenight.config import Settings
from gamenight.discord.router import InteractionRouter

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature-Ed25519"
TIMESTAMP_HEADER = "X-Signature-Timestamp"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_engine(request: Request) -> AsyncEngine:
    """Get the database engine from app state."""
    return request.app.state.engine


def is_valid_signature(public_key: str, signature: str, timestamp: str, body: bytes) -> bool:
    """Check Discord's Ed25519 signature over ``timestamp + body``."""
    try:
        VerifyKey(bytes.fromhex(public_key)).verify(
            timestamp.encode() + body, bytes.fromhex(signature)
        )
    except (CryptoError, ValueError):
        return False
    return True


async def check_signature(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> bool:
    """True when the request carries a valid signature, or verification is off."""
    if not settings.gamenight_verify_signatures:
        return True
    signature = request.headers.get(SIGNATURE_HEADER)
    timestamp = request.headers.get(TIMESTAMP_HEADER)
    if not signature or not timestamp or not settings.discord_public_key:
        return False
    body = await request.body()
    return is_valid_signature(settings.discord_public_key, signature, timestamp, body)


async def get_interaction_router(
    request: Request,
    engine: Annotated[AsyncEngine, Depends(get_engine)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> InteractionRouter:
    """Build a router over the shared engine, transport, and resolver."""
    state = request.app.state
    return InteractionRouter(
        engine,
        state.transport,
        state.resolver,
        resolve_budget=settings.gamenight_resolve_budget_seconds,
    )


SignatureOK = Annotated[bool, Depends(check_signature)]
RouterDep = Annotated[InteractionRouter, Depends(get_interaction_router)]
