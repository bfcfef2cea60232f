"""Discord interactions endpoint.

Discord POSTs every command, button click, and modal submission here and
expects an interaction response envelope back within three seconds. Follow-up
work (recording posts, syncing other posts) runs as a background task after
the response is sent.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PayloadError

from gamenight.api.deps import RouterDep, SignatureOK
from gamenight.core.errors import ProtocolError
from gamenight.models.interaction import Interaction

logger = logging.getLogger(__name__)

router = APIRouter(tags=["interactions"])

INVALID_SIGNATURE = "invalid request signature"
MALFORMED_PAYLOAD = "malformed interaction payload"


@router.post("/interactions")
async def receive_interaction(
    request: Request,
    background_tasks: BackgroundTasks,
    signature_ok: SignatureOK,
    interaction_router: RouterDep,
) -> JSONResponse:
    """Verify, parse, and route one interaction."""
    if not signature_ok:
        logger.warning("interaction_signature_invalid")
        return JSONResponse({"error": INVALID_SIGNATURE}, status_code=401)

    try:
        interaction = Interaction.model_validate_json(await request.body())
    except PayloadError as exc:
        logger.warning("interaction_malformed errors=%d", exc.error_count())
        return JSONResponse({"error": MALFORMED_PAYLOAD}, status_code=400)

    try:
        reply = await interaction_router.handle(interaction)
    except ProtocolError as exc:
        logger.warning(
            "interaction_unroutable id=%s reason=%s: %s", interaction.id, exc.reason, exc
        )
        return JSONResponse({"error": exc.reason}, status_code=400)

    if reply.follow_up is not None:
        background_tasks.add_task(reply.follow_up)
    return JSONResponse(reply.envelope())
