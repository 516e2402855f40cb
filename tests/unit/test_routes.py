"""Tests for the HTTP endpoints."""

import hashlib
import hmac
import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from app.config import settings
from app.core.intelligence.intent.types import Intent
from app.core.intelligence.session.models import Flow, PatientData, TriageSession
from app.core.scheduling.engine import EngineResponse
from app.infra.whatsapp import WhatsAppSendError
from app.main import app

CONTACT = "5217711234567"


def text_event(body: str) -> dict:
    return {
        "entry": [{
            "changes": [{
                "value": {
                    "contacts": [{"profile": {"name": "Ana López"}}],
                    "messages": [{
                        "from": CONTACT,
                        "id": "wamid.1",
                        "type": "text",
                        "text": {"body": body},
                    }],
                },
            }],
        }],
    }


@pytest.fixture
def client():
    """Test client without lifespan (no Redis, no external services)."""
    return TestClient(app)


@pytest.fixture
def mock_engine():
    """Mock dialogue engine."""
    engine = MagicMock()
    engine.handle = AsyncMock(return_value=EngineResponse(
        reply="Horarios disponibles",
        contact_id=CONTACT,
        flow=Flow.BOOKING,
        step=1,
        intent=Intent.BOOK_APPOINTMENT,
        processing_time_ms=5.0,
    ))
    engine.get_session = AsyncMock(return_value=None)
    engine.reset_session = AsyncMock(return_value=False)
    return engine


@pytest.fixture
def mock_whatsapp():
    whatsapp = MagicMock()
    whatsapp.send_text = AsyncMock(return_value={})
    return whatsapp


class TestWebhookVerification:
    """Test GET /webhook."""

    def test_challenge_echoed(self, client, monkeypatch):
        monkeypatch.setattr(settings, "verify_token", "verify-me")

        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "12345"},
        )

        assert response.status_code == 200
        assert response.text == "12345"

    def test_wrong_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "verify_token", "verify-me")

        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "12345"},
        )

        assert response.status_code == 403

    def test_token_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "verify_token", None)

        response = client.get("/webhook", params={"hub.mode": "subscribe", "hub.challenge": "1"})

        assert response.status_code == 403


class TestWebhookEvents:
    """Test POST /webhook."""

    def _post(self, client, payload, secret=None, signature=None):
        body = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if secret is not None:
            headers["X-Hub-Signature-256"] = "sha256=" + hmac.new(
                secret.encode("utf-8"), body, hashlib.sha256
            ).hexdigest()
        if signature is not None:
            headers["X-Hub-Signature-256"] = signature
        return client.post("/webhook", content=body, headers=headers)

    def test_message_processed_and_replied(self, client, monkeypatch, mock_engine, mock_whatsapp):
        monkeypatch.setattr(settings, "app_secret", "app-secret")

        with patch("app.api.routes.webhook.get_dialogue_engine", return_value=mock_engine), \
                patch("app.api.routes.webhook.get_whatsapp_client", return_value=mock_whatsapp):
            response = self._post(client, text_event("quiero agendar"), secret="app-secret")

        assert response.status_code == 200
        message = mock_engine.handle.call_args.args[0]
        assert message.contact_id == CONTACT
        assert message.text == "quiero agendar"
        mock_whatsapp.send_text.assert_awaited_once_with(CONTACT, "Horarios disponibles")

    def test_bad_signature(self, client, monkeypatch, mock_engine):
        monkeypatch.setattr(settings, "app_secret", "app-secret")

        with patch("app.api.routes.webhook.get_dialogue_engine", return_value=mock_engine):
            response = self._post(client, text_event("hola"), signature="sha256=deadbeef")

        assert response.status_code == 403
        mock_engine.handle.assert_not_called()

    def test_missing_signature(self, client, monkeypatch, mock_engine):
        monkeypatch.setattr(settings, "app_secret", "app-secret")

        with patch("app.api.routes.webhook.get_dialogue_engine", return_value=mock_engine):
            response = self._post(client, text_event("hola"))

        assert response.status_code == 403

    def test_status_callback_ignored(self, client, monkeypatch, mock_engine):
        monkeypatch.setattr(settings, "app_secret", None)
        payload = {"entry": [{"changes": [{"value": {"statuses": [{"status": "delivered"}]}}]}]}

        with patch("app.api.routes.webhook.get_dialogue_engine", return_value=mock_engine):
            response = self._post(client, payload)

        assert response.status_code == 200
        mock_engine.handle.assert_not_called()

    def test_invalid_json(self, client, monkeypatch, mock_engine):
        monkeypatch.setattr(settings, "app_secret", None)

        with patch("app.api.routes.webhook.get_dialogue_engine", return_value=mock_engine):
            response = client.post("/webhook", content=b"not json")

        assert response.status_code == 200
        mock_engine.handle.assert_not_called()

    def test_send_failure_still_acknowledged(self, client, monkeypatch, mock_engine, mock_whatsapp):
        """Test Meta always gets 200 so it does not redeliver."""
        monkeypatch.setattr(settings, "app_secret", None)
        mock_whatsapp.send_text.side_effect = WhatsAppSendError("401")

        with patch("app.api.routes.webhook.get_dialogue_engine", return_value=mock_engine), \
                patch("app.api.routes.webhook.get_whatsapp_client", return_value=mock_whatsapp):
            response = self._post(client, text_event("hola"))

        assert response.status_code == 200

    def test_engine_failure_still_acknowledged(self, client, monkeypatch, mock_engine, mock_whatsapp):
        monkeypatch.setattr(settings, "app_secret", None)
        mock_engine.handle.side_effect = RuntimeError("boom")

        with patch("app.api.routes.webhook.get_dialogue_engine", return_value=mock_engine), \
                patch("app.api.routes.webhook.get_whatsapp_client", return_value=mock_whatsapp):
            response = self._post(client, text_event("hola"))

        assert response.status_code == 200
        mock_whatsapp.send_text.assert_not_called()


class TestChat:
    """Test /chat endpoints."""

    def test_chat(self, client, monkeypatch, mock_engine):
        monkeypatch.setattr(settings, "admin_api_key", None)

        with patch("app.api.routes.chat.get_dialogue_engine", return_value=mock_engine):
            response = client.post(
                "/chat",
                json={"contact_id": CONTACT, "contact_name": "Ana López", "text": "quiero agendar"},
            )

        assert response.status_code == 200
        data = response.json()
        assert data["reply"] == "Horarios disponibles"
        assert data["flow"] == "booking"
        assert data["step"] == 1
        assert data["intent"] == "book_appointment"
        assert data["reply_source"] == "flow"

    def test_chat_validation(self, client, monkeypatch):
        monkeypatch.setattr(settings, "admin_api_key", None)

        response = client.post("/chat", json={"contact_id": CONTACT, "text": ""})

        assert response.status_code == 422

    def test_chat_requires_key(self, client, monkeypatch, mock_engine):
        """Test the admin key is enforced when configured."""
        monkeypatch.setattr(settings, "admin_api_key", "admin-key-123")
        payload = {"contact_id": CONTACT, "text": "hola"}

        with patch("app.api.routes.chat.get_dialogue_engine", return_value=mock_engine):
            missing = client.post("/chat", json=payload)
            wrong = client.post("/chat", json=payload, headers={"X-API-Key": "nope"})
            right = client.post("/chat", json=payload, headers={"X-API-Key": "admin-key-123"})

        assert missing.status_code == 401
        assert wrong.status_code == 403
        assert right.status_code == 200

    def test_engine_error(self, client, monkeypatch, mock_engine):
        monkeypatch.setattr(settings, "admin_api_key", None)
        mock_engine.handle.side_effect = RuntimeError("boom")

        with patch("app.api.routes.chat.get_dialogue_engine", return_value=mock_engine):
            response = client.post("/chat", json={"contact_id": CONTACT, "text": "hola"})

        assert response.status_code == 500

    def test_get_session(self, client, monkeypatch, mock_engine):
        monkeypatch.setattr(settings, "admin_api_key", None)
        mock_engine.get_session.return_value = TriageSession(step=1, patient=PatientData(age=38))

        with patch("app.api.routes.chat.get_dialogue_engine", return_value=mock_engine):
            response = client.get(f"/chat/session/{CONTACT}")

        assert response.status_code == 200
        data = response.json()
        assert data["contact_id"] == CONTACT
        assert data["flow"] == "triage"
        assert data["patient"]["age"] == 38

    def test_get_missing_session(self, client, monkeypatch, mock_engine):
        monkeypatch.setattr(settings, "admin_api_key", None)

        with patch("app.api.routes.chat.get_dialogue_engine", return_value=mock_engine):
            response = client.get(f"/chat/session/{CONTACT}")

        assert response.status_code == 404

    def test_reset_session(self, client, monkeypatch, mock_engine):
        monkeypatch.setattr(settings, "admin_api_key", None)

        with patch("app.api.routes.chat.get_dialogue_engine", return_value=mock_engine):
            missing = client.delete(f"/chat/session/{CONTACT}")
            mock_engine.reset_session.return_value = True
            deleted = client.delete(f"/chat/session/{CONTACT}")

        assert missing.status_code == 404
        assert deleted.status_code == 204


class TestHealth:
    """Test health probes."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_memory_backend(self, client, monkeypatch):
        monkeypatch.setattr(settings, "session_backend", "memory")

        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"]["sessions"] == "memory"

    def test_ready_redis_down(self, client, monkeypatch):
        monkeypatch.setattr(settings, "session_backend", "redis")

        with patch("app.api.routes.health.check_redis_health", return_value=False):
            response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["redis"] == "failed"

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["ok"] is True
