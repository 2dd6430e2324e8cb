# aibot/routes/webhook.py

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from typing import Optional
import json
import logging

from aibot.services.webhook_service import EVENT_RECEIVED, WebhookService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_webhook_service(request: Request) -> WebhookService:
    return request.app.state.webhook_service


@router.get("/webhook")
async def verify(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    webhook_service: WebhookService = Depends(get_webhook_service),
):
    return await webhook_service.verify_webhook(mode, token, challenge)


@router.post("/webhook")
async def webhook(
    request: Request,
    webhook_service: WebhookService = Depends(get_webhook_service),
):
    raw = await request.body()
    try:
        body = json.loads(raw)
    except ValueError:
        logger.warning("Received webhook with a non-JSON body")
        return PlainTextResponse(content=EVENT_RECEIVED)

    logger.debug(f"Received webhook: {raw[:500]!r}")
    return await webhook_service.handle_webhook(body)


@router.get("/webhook/test", response_class=PlainTextResponse)
async def test_webhook(
    phone: Optional[str] = None,
    webhook_service: WebhookService = Depends(get_webhook_service),
):
    return await webhook_service.test_connection(phone)
