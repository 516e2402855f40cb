"""Tests for the dialogue engine."""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch
from datetime import datetime
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.intelligence.extraction.extractor import FieldExtractor
from app.core.intelligence.intent.classifier import Interpreter
from app.core.intelligence.intent.types import Intent, InterpretationResult, InterpretationSource
from app.core.intelligence.session.models import (
    BookingData,
    BookingSession,
    Flow,
    IdleSession,
)
from app.core.intelligence.session.store import InMemorySessionStore, SessionStore
from app.core.scheduling.booking import BookingResult
from app.core.scheduling.engine import DialogueEngine, EngineResponse
from app.core.scheduling.flow import ConversationFlow, FlowResult
from app.core.scheduling.response import ResponseGenerator
from app.models.messages import InboundMessage
from app.models.slots import Slot
from app.safety.guardrails import ExitReason

TZ = ZoneInfo("America/Mexico_City")
CONTACT = "5217711234567"


def message(text: str, contact_id: str = CONTACT) -> InboundMessage:
    return InboundMessage(contact_id=contact_id, text=text, contact_name="Ana López")


class TestDialogueEngine:
    """Test DialogueEngine orchestrator."""

    @pytest.fixture
    def slots(self):
        return [
            Slot(start=datetime(2026, 10, 19, 10, 0, tzinfo=TZ), label="lun 19 oct 2026, 10:00"),
            Slot(start=datetime(2026, 10, 19, 10, 30, tzinfo=TZ), label="lun 19 oct 2026, 10:30"),
        ]

    @pytest.fixture
    def store(self):
        return InMemorySessionStore(ttl_seconds=0)

    @pytest.fixture
    def responses(self):
        return ResponseGenerator(use_llm=False)

    @pytest.fixture
    def mock_sink(self):
        sink = AsyncMock()
        sink.create_tentative_event.return_value = BookingResult(success=True, event_id="evt-123")
        return sink

    @pytest.fixture
    def flow(self, slots, mock_sink, responses):
        availability = AsyncMock()
        availability.list_free_slots.return_value = slots
        return ConversationFlow(
            field_extractor=FieldExtractor(use_llm=False),
            availability=availability,
            booking_sink=mock_sink,
            responses=responses,
            timeout=0.5,
        )

    @pytest.fixture
    def engine(self, store, flow, responses):
        """Create engine with rules-only interpretation."""
        return DialogueEngine(
            store=store,
            interpreter=Interpreter(use_llm=False),
            flow=flow,
            responses=responses,
            timeout=0.5,
        )

    # === Response Model Tests ===

    def test_engine_response_to_dict(self):
        response = EngineResponse(
            reply="Hola",
            contact_id=CONTACT,
            flow=Flow.BOOKING,
            step=1,
            intent=Intent.BOOK_APPOINTMENT,
            processing_time_ms=12.0,
        )

        d = response.to_dict()

        assert d["flow"] == "booking"
        assert d["step"] == 1
        assert d["intent"] == "book_appointment"
        assert d["reply_source"] == "flow"
        assert "exit_reason" not in d

    def test_guardrail_response_has_no_flow(self):
        d = EngineResponse(
            reply="911",
            contact_id=CONTACT,
            reply_source="guardrail",
            exit_reason=ExitReason.EMERGENCY,
        ).to_dict()

        assert "flow" not in d
        assert "step" not in d
        assert d["exit_reason"] == "emergency"

    # === Turn Tests ===

    @pytest.mark.asyncio
    async def test_booking_conversation(self, engine, store, slots):
        """Test a full booking across three turns."""
        first = await engine.handle(message("quiero agendar"))

        assert first.flow == Flow.BOOKING
        assert first.step == 1
        assert first.intent == Intent.BOOK_APPOINTMENT
        assert first.reply_source == "flow"

        second = await engine.handle(message("2"))
        assert second.step == 2

        third = await engine.handle(message("sí"))

        assert third.flow == Flow.NONE
        assert third.step == 0
        assert third.booking_event_id == "evt-123"
        assert await store.get(CONTACT) is None

    @pytest.mark.asyncio
    async def test_guardrail_leaves_session_untouched(self, engine, store, slots):
        """Test an emergency answers without reading or writing the session."""
        session = BookingSession(step=1, booking=BookingData(candidate_slots=slots))
        await store.put(CONTACT, session)

        response = await engine.handle(message("tengo sangrado"))

        assert response.reply_source == "guardrail"
        assert response.exit_reason == ExitReason.EMERGENCY
        assert response.flow is None
        assert "911" in response.reply
        assert await store.get(CONTACT) == session

    @pytest.mark.asyncio
    async def test_guardrail_skips_store(self, flow, responses):
        store = AsyncMock(spec=SessionStore)
        engine = DialogueEngine(
            store=store,
            interpreter=Interpreter(use_llm=False),
            flow=flow,
            responses=responses,
        )

        response = await engine.handle(message("¿hacen endoscopias?"))

        assert response.exit_reason == ExitReason.EXCLUDED_PROCEDURE
        store.get.assert_not_called()
        store.put.assert_not_called()

    @pytest.mark.asyncio
    async def test_fallback_generator(self, engine, store):
        """Test unmatched idle messages use the free-text generator."""
        response = await engine.handle(message("hola"))

        assert response.reply == settings.fallback_reply
        assert response.reply_source == "generator"
        assert response.flow == Flow.NONE
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_fallback_faq(self, engine):
        response = await engine.handle(message("what is a gastric sleeve?"))

        assert response.reply_source == "faq"
        assert "manga gástrica" in response.reply

    @pytest.mark.asyncio
    async def test_fallback_llm_reply(self, store, flow, responses):
        """Test the LLM's own reply is used before the generator."""
        interpreter = AsyncMock()
        interpreter.interpret.return_value = InterpretationResult(
            reply="¡Hola! ¿En qué te ayudo?",
            source=InterpretationSource.LLM,
        )
        engine = DialogueEngine(store=store, interpreter=interpreter, flow=flow, responses=responses)

        response = await engine.handle(message("hola"))

        assert response.reply == "¡Hola! ¿En qué te ayudo?"
        assert response.reply_source == "llm"

    @pytest.mark.asyncio
    async def test_fallback_generator_timeout(self, engine, responses):
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        with patch.object(responses, "free_text_reply", side_effect=hang):
            response = await engine.handle(message("hola"))

        assert response.reply == settings.fallback_reply
        assert response.reply_source == "generator"

    @pytest.mark.asyncio
    async def test_interpreter_timeout_uses_rules(self, store, flow, responses):
        """Test a hung interpreter degrades to the keyword rules."""
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        interpreter = AsyncMock()
        interpreter.interpret.side_effect = hang
        engine = DialogueEngine(
            store=store,
            interpreter=interpreter,
            flow=flow,
            responses=responses,
            timeout=0.1,
        )

        response = await engine.handle(message("¿dónde están?"))

        assert response.intent == Intent.LOCATION
        assert response.reply == responses.location()

    @pytest.mark.asyncio
    async def test_illegal_session_reset(self, store, responses):
        """Test a state machine result breaking an invariant is not stored."""
        flow = AsyncMock()
        flow.process.return_value = FlowResult(BookingSession(step=1), "¿?")
        engine = DialogueEngine(
            store=store,
            interpreter=Interpreter(use_llm=False),
            flow=flow,
            responses=responses,
        )

        response = await engine.handle(message("quiero agendar"))

        assert response.flow == Flow.NONE
        assert await store.get(CONTACT) is None

    @pytest.mark.asyncio
    async def test_same_contact_turns_serialised(self, engine, store):
        """Test a second message waits for the first turn's session."""
        first, second = await asyncio.gather(
            engine.handle(message("quiero agendar")),
            engine.handle(message("2")),
        )

        assert first.step == 1
        assert second.step == 2
        assert (await store.get(CONTACT)).step == 2

    @pytest.mark.asyncio
    async def test_contacts_isolated(self, engine, store):
        await engine.handle(message("quiero agendar", contact_id="c1"))
        await engine.handle(message("me interesa la manga", contact_id="c2"))

        assert (await store.get("c1")).flow == Flow.BOOKING
        assert (await store.get("c2")).flow == Flow.TRIAGE

    # === Session Admin Tests ===

    @pytest.mark.asyncio
    async def test_get_and_reset_session(self, engine):
        await engine.handle(message("quiero agendar"))

        session = await engine.get_session(CONTACT)
        assert isinstance(session, BookingSession)

        assert await engine.reset_session(CONTACT) is True
        assert await engine.get_session(CONTACT) is None
        assert await engine.reset_session(CONTACT) is False

    @pytest.mark.asyncio
    async def test_idle_session_never_stored(self, engine, store):
        await engine.handle(message("¿dónde están?"))

        assert len(store) == 0
        assert not isinstance(await store.get(CONTACT), IdleSession)
