"""
WhatsApp Webhook Endpoints.

GET  /webhook - Meta verification handshake
POST /webhook - inbound messages; one turn per message, reply sent back
                through the Cloud API
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, Response, status
from fastapi.responses import PlainTextResponse

from app.config import settings
from app.core.scheduling.engine import get_dialogue_engine
from app.infra.whatsapp import (
    WhatsAppSendError,
    get_whatsapp_client,
    parse_inbound_event,
    verify_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhook"])


@router.get(
    "",
    summary="Webhook verification",
    description="Echo hub.challenge when hub.verify_token matches the configured token.",
    responses={
        200: {"description": "Challenge echoed"},
        403: {"description": "Verification failed"},
    },
)
async def verify_webhook(
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
) -> Response:
    """Meta webhook verification handshake."""
    if (
        hub_mode == "subscribe"
        and settings.verify_token
        and hub_verify_token == settings.verify_token
    ):
        logger.info("Webhook verified")
        return PlainTextResponse(hub_challenge or "")

    logger.warning("Webhook verification failed")
    return Response(status_code=status.HTTP_403_FORBIDDEN)


@router.post(
    "",
    summary="Inbound WhatsApp events",
    description="Verifies the signature, runs one conversation turn and sends the reply. "
                "Always answers 200 once the signature is valid.",
    responses={
        200: {"description": "Event accepted"},
        403: {"description": "Invalid signature"},
    },
)
async def receive_webhook(request: Request) -> Response:
    """Handle an inbound WhatsApp event."""
    raw_body = await request.body()

    if settings.app_secret and not verify_signature(
        raw_body,
        request.headers.get("x-hub-signature-256"),
        settings.app_secret,
    ):
        logger.warning("Webhook rejected: invalid signature")
        return Response(status_code=status.HTTP_403_FORBIDDEN)

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        logger.warning("Webhook body is not JSON")
        return Response(status_code=status.HTTP_200_OK)

    message = parse_inbound_event(payload)
    if message is None:
        return Response(status_code=status.HTTP_200_OK)

    try:
        response = await get_dialogue_engine().handle(message)
        await get_whatsapp_client().send_text(message.contact_id, response.reply)
    except WhatsAppSendError as e:
        logger.error(f"Failed to send reply to {message.contact_id}: {e}")
    except Exception as e:
        logger.exception(f"Webhook error for {message.contact_id}: {e}")

    return Response(status_code=status.HTTP_200_OK)
