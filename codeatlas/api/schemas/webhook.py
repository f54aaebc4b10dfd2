"""Webhook intake schemas."""

from __future__ import annotations

import uuid

from pydantic import BaseModel


class WebhookAccepted(BaseModel):
    queued: bool
    item_id: uuid.UUID | None = None
    event_type: str
