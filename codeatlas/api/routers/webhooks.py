"""GitHub webhook intake: verify, enqueue, acknowledge."""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from codeatlas.api.deps import get_queue_service, get_session, get_settings
from codeatlas.api.schemas.webhook import WebhookAccepted
from codeatlas.core.config import Settings
from codeatlas.core.github import verify_webhook_signature
from codeatlas.services.webhook_queue_service import WebhookQueueService

log = structlog.get_logger("codeatlas.api")

router = APIRouter()

# everything else (ping included) is acknowledged without queueing
QUEUED_EVENTS = frozenset({"push", "pull_request"})


@router.post("/github", response_model=WebhookAccepted, status_code=202)
async def github_webhook(
    request: Request,
    x_github_event: str = Header(...),
    x_github_delivery: str | None = Header(None),
    x_hub_signature_256: str | None = Header(None),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    queue: WebhookQueueService = Depends(get_queue_service),
) -> WebhookAccepted:
    body = await request.body()
    if settings.webhook_secret and not verify_webhook_signature(
        body, x_hub_signature_256, settings.webhook_secret
    ):
        log.warning("webhook.bad_signature", event_type=x_github_event)
        raise HTTPException(status_code=401, detail="invalid webhook signature")

    if x_github_event not in QUEUED_EVENTS:
        log.info("webhook.ignored", event_type=x_github_event)
        return WebhookAccepted(queued=False, event_type=x_github_event)

    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="payload is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="payload must be a JSON object")

    item_id = await queue.enqueue(session, x_github_event, payload, x_github_delivery)
    return WebhookAccepted(queued=item_id is not None, item_id=item_id, event_type=x_github_event)
