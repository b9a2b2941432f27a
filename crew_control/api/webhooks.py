"""Outbound webhook subscription endpoints."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlmodel import col

from crew_control.api.deps import ACTOR_DEP, SESSION_DEP
from crew_control.db import crud
from crew_control.db.errors import storage_guard
from crew_control.models.webhooks import Webhook
from crew_control.schemas.common import OkResponse
from crew_control.schemas.webhooks import WebhookCreate, WebhookRead

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from crew_control.core.auth import ActorContext

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _read(webhook: Webhook, *, include_secret: bool = False) -> WebhookRead:
    read = WebhookRead.model_validate(webhook, from_attributes=True)
    return read if include_secret else read.model_copy(update={"secret": None})


@router.get("", response_model=list[WebhookRead])
async def list_webhooks(
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> list[WebhookRead]:
    with storage_guard("list webhooks"):
        webhooks = await Webhook.objects.all().order_by(col(Webhook.created_at)).all(session)
    return [_read(webhook) for webhook in webhooks]


@router.post("", response_model=WebhookRead, status_code=status.HTTP_201_CREATED)
async def create_webhook(
    payload: WebhookCreate,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> WebhookRead:
    """Register an endpoint; the signing secret is only returned here."""
    webhook = Webhook(
        name=payload.name,
        endpoint=payload.endpoint,
        description=payload.description,
        events=list(payload.events),
        secret=payload.secret or secrets.token_hex(32),
        is_active=payload.is_active,
    )
    with storage_guard("create webhook"):
        await crud.save(session, webhook)
    return _read(webhook, include_secret=True)


@router.delete("/{webhook_id}", response_model=OkResponse)
async def delete_webhook(
    webhook_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> OkResponse:
    with storage_guard("delete webhook"):
        deleted = await crud.delete_where(session, Webhook, col(Webhook.id) == webhook_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return OkResponse()
