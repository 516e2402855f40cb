"""
WhatsApp Cloud API transport.

- send_text: POST /{version}/{phone_number_id}/messages
- verify_signature: X-Hub-Signature-256 check over the raw webhook body
- parse_inbound_event: flatten a webhook payload into an InboundMessage
"""

import hashlib
import hmac
import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.models.messages import InboundMessage, MessageKind

logger = logging.getLogger(__name__)

GRAPH_API_BASE_URL = "https://graph.facebook.com"


class WhatsAppSendError(Exception):
    """WhatsApp Cloud API send error."""
    pass


def verify_signature(raw_body: bytes, signature_header: Optional[str], app_secret: str) -> bool:
    """
    Verify a webhook's X-Hub-Signature-256 header.

    Args:
        raw_body: Request body exactly as received
        signature_header: Header value, "sha256=<hex>"
        app_secret: Meta app secret

    Returns:
        True if the signature matches
    """
    if not signature_header:
        return False
    expected = "sha256=" + hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature_header.strip(), expected)


def _first(items: Any) -> Optional[dict]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


def _text_field(obj: Any, key: str) -> str:
    value = obj.get(key) if isinstance(obj, dict) else None
    return value if isinstance(value, str) else ""


def parse_inbound_event(payload: Any) -> Optional[InboundMessage]:
    """
    Extract the first message of the first change of a webhook payload.

    Text messages keep their body, interactive button/list replies are
    flattened to the selected title, anything else becomes "[type]".

    Returns:
        InboundMessage, or None when the payload carries no message
        (status callbacks, malformed bodies)
    """
    if not isinstance(payload, dict):
        return None

    entry = _first(payload.get("entry"))
    change = _first(entry.get("changes")) if entry else None
    value = change.get("value") if change else None
    if not isinstance(value, dict):
        return None

    msg = _first(value.get("messages"))
    if msg is None or not msg.get("from"):
        return None

    contact = _first(value.get("contacts")) or {}
    profile = contact.get("profile") if isinstance(contact.get("profile"), dict) else {}
    contact_name = _text_field(profile, "name") or None

    msg_type = msg.get("type") or "unknown"
    kind = MessageKind.OTHER
    text = f"[{msg_type}]"

    if msg_type == "text":
        kind = MessageKind.TEXT
        text = _text_field(msg.get("text"), "body")
    elif msg_type == "interactive":
        interactive = msg.get("interactive")
        reply_type = interactive.get("type") if isinstance(interactive, dict) else None
        if reply_type in ("button_reply", "list_reply"):
            kind = MessageKind.INTERACTIVE
            text = _text_field(interactive.get(reply_type), "title")

    return InboundMessage(
        contact_id=str(msg["from"]),
        text=text,
        contact_name=contact_name,
        kind=kind,
        message_id=msg.get("id"),
    )


class WhatsAppClient:
    """HTTP client for the WhatsApp Cloud API."""

    def __init__(
        self,
        token: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            token: Graph API bearer token (defaults to settings)
            phone_number_id: Sending phone number ID (defaults to settings)
            api_version: Graph API version (defaults to settings)
            timeout: Request timeout in seconds
            transport: Custom httpx transport (for testing)
        """
        self.token = token or settings.whatsapp_token
        self.phone_number_id = phone_number_id or settings.phone_number_id
        self.api_version = api_version or settings.graph_api_version
        self.timeout = timeout or settings.external_call_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=GRAPH_API_BASE_URL,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_text(self, to: str, body: str) -> dict:
        """Send a plain-text message.

        Args:
            to: Recipient WhatsApp ID
            body: Message text, truncated to the API's maximum length

        Returns:
            API response JSON

        Raises:
            WhatsAppSendError: If not configured or the API rejects the request
        """
        if not self.token or not self.phone_number_id:
            raise WhatsAppSendError("WhatsApp not configured: WHATSAPP_TOKEN / PHONE_NUMBER_ID missing")

        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body[: settings.whatsapp_max_message_length]},
        }

        client = await self._get_client()
        try:
            response = await client.post(
                f"/{self.api_version}/{self.phone_number_id}/messages",
                json=payload,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        except httpx.HTTPError as e:
            raise WhatsAppSendError(f"Send failed: {e}") from e

        if response.status_code >= 300:
            raise WhatsAppSendError(f"Send failed: {response.status_code} {response.text[:500]}")

        logger.debug(f"Message sent to {to}")
        return response.json()


# Singleton
_client: Optional[WhatsAppClient] = None


def get_whatsapp_client() -> WhatsAppClient:
    """Get singleton WhatsAppClient."""
    global _client
    if _client is None:
        _client = WhatsAppClient()
    return _client


async def close_whatsapp_client() -> None:
    """Close the singleton client, if created."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
