"""Strava push subscription endpoints.

Rules: always ACK with 200, no sync logic inline. The event is handed to the
orchestrator as a background task after the response is sent.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from loguru import logger

from coachsync.config.settings import settings
from coachsync.db.session import get_session_factory
from coachsync.sync.orchestrator import SyncOrchestrator
from coachsync.sync.scoring import CeleryScoringNotifier

router = APIRouter(prefix="/webhooks/strava", tags=["webhooks", "strava"])


def get_orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator(get_session_factory(), notifier=CeleryScoringNotifier())


@router.get("")
def webhook_verification(
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
) -> dict[str, str]:
    """Handle Strava webhook subscription verification.

    Returns:
        JSON echoing hub.challenge when the mode and verify token check out

    Raises:
        HTTPException: 400 for a bad mode or missing challenge, 403 for a bad token
    """
    logger.info("[WEBHOOK] Verification request received")

    if hub_mode != "subscribe":
        logger.warning(f"[WEBHOOK] Invalid hub.mode: {hub_mode}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid hub.mode. Must be 'subscribe'.")

    expected_token = settings.strava_webhook_verify_token
    if not expected_token:
        logger.warning("[WEBHOOK] STRAVA_WEBHOOK_VERIFY_TOKEN not configured, rejecting verification")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Webhook verification not configured")

    if hub_verify_token != expected_token:
        logger.warning("[WEBHOOK] Invalid hub.verify_token")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid hub.verify_token")

    if not hub_challenge:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="hub.challenge is required")

    logger.info("[WEBHOOK] Verification successful")
    return {"hub.challenge": hub_challenge}


@router.post("")
async def webhook_event(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Accept a Strava event and process it after responding."""
    try:
        body = await request.body()
        payload = json.loads(body.decode() or "null")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"[WEBHOOK] Failed to parse event payload: {e}")
        return {"status": "ignored", "reason": "invalid_json"}

    if not isinstance(payload, dict):
        logger.warning("[WEBHOOK] Event payload is not an object")
        return {"status": "ignored", "reason": "invalid_payload"}

    logger.info(
        f"[WEBHOOK] Event: object_type={payload.get('object_type')}, aspect_type={payload.get('aspect_type')}, "
        f"owner_id={payload.get('owner_id')}, object_id={payload.get('object_id')}"
    )

    background_tasks.add_task(orchestrator.handle_webhook_event, payload)
    return {"status": "accepted"}
