"""Tests for message interpretation."""

import pytest
from unittest.mock import AsyncMock
from dataclasses import dataclass

from app.config import settings
from app.core.intelligence.intent.classifier import Interpreter, LLMInterpreter
from app.core.intelligence.intent.rules import RuleInterpreter, match_intent
from app.core.intelligence.intent.types import (
    ConfirmationType,
    Intent,
    InterpretationResult,
    InterpretationSource,
)
from app.infra.claude import ClaudeClientError


@dataclass
class MockClaudeResponse:
    """Mock Claude response."""
    content: str
    model: str = "claude-3-5-haiku-20241022"
    input_tokens: int = 100
    output_tokens: int = 50
    stop_reason: str = "end_turn"
    latency_ms: float = 50.0


class TestIntentRules:
    """Test the ordered keyword rules."""

    @pytest.mark.parametrize("text,expected", [
        ("¿Dónde están ubicados?", Intent.LOCATION),
        ("quiero agendar una cita", Intent.BOOK_APPOINTMENT),
        ("¿cuánto cuesta la manga?", Intent.PRICES),
        ("me interesa el bypass", Intent.BARIATRIC_TRIAGE),
        ("tengo piedras en la vesícula", Intent.OTHER_GI),
        ("quiero hablar con un asesor", Intent.HUMAN),
    ])
    def test_match_intent(self, text, expected):
        """Test first matching pattern wins."""
        assert match_intent(text) == expected

    def test_no_match(self):
        assert match_intent("hola") is None
        assert match_intent("") is None

    def test_rule_interpreter_booking(self):
        """Test booking rule sets wants_appointment."""
        result = RuleInterpreter().interpret("¿tienen disponibilidad el lunes?")

        assert result.intent == Intent.BOOK_APPOINTMENT
        assert result.wants_appointment is True
        assert result.signals_booking is True
        assert result.source == InterpretationSource.RULES

    def test_rule_interpreter_default(self):
        """Test unmatched text gets the safe default."""
        result = RuleInterpreter().interpret("hola")

        assert result.intent == Intent.GENERAL_INFO
        assert result.reply == settings.fallback_reply
        assert result.source == InterpretationSource.DEFAULT
        assert result.signals_booking is False


class TestInterpreter:
    """Test the interpretation facade."""

    @pytest.fixture
    def mock_claude_client(self):
        """Mock Claude client."""
        return AsyncMock()

    @pytest.fixture
    def interpreter(self, mock_claude_client):
        """Create interpreter with mock client."""
        return Interpreter(claude_client=mock_claude_client, use_llm=True)

    def _mock_response(self, mock_client, json_response: str):
        """Helper to mock Claude response."""
        mock_client.generate.return_value = MockClaudeResponse(content=json_response)

    @pytest.mark.asyncio
    async def test_llm_interpretation(self, interpreter, mock_claude_client):
        """Test a well-formed LLM answer."""
        self._mock_response(
            mock_claude_client,
            '''
            {
                "reply": "Con gusto te ayudo.",
                "intent": "book_appointment",
                "entities": {"age": 38, "weight_kg": 112, "height_cm": 168, "conditions": ["diabetes"]},
                "want_appointment": true,
                "confirm_appointment": "yes",
                "slot_choice_index": 2
            }
            ''',
        )

        result = await interpreter.interpret("me gustaría ir la otra semana")

        assert result.reply == "Con gusto te ayudo."
        assert result.intent == Intent.BOOK_APPOINTMENT
        assert result.entities.age == 38
        assert result.entities.weight_kg == 112.0
        assert result.entities.conditions == ["diabetes"]
        assert result.wants_appointment is True
        assert result.confirm_appointment == ConfirmationType.YES
        assert result.slot_choice_index == 2
        assert result.source == InterpretationSource.LLM

    @pytest.mark.asyncio
    async def test_llm_fields_sanitised(self, interpreter, mock_claude_client):
        """Test unknown values are dropped instead of trusted."""
        self._mock_response(
            mock_claude_client,
            '{"reply": "ok", "intent": "book_surgery_now", "entities": "none", '
            '"want_appointment": "yes", "confirm_appointment": "maybe", "slot_choice_index": true}',
        )

        result = await interpreter.interpret("mmm")

        assert result.intent == Intent.GENERAL_INFO
        assert result.entities.age is None
        assert result.wants_appointment is False
        assert result.confirm_appointment is None
        assert result.slot_choice_index is None

    @pytest.mark.asyncio
    async def test_infinite_entities_dropped(self, interpreter, mock_claude_client):
        """Test overflowing numbers are dropped and the LLM reply is kept."""
        self._mock_response(
            mock_claude_client,
            '{"reply": "hola", "intent": "general_info", '
            '"entities": {"age": 1e999, "weight_kg": Infinity, "height_cm": 168}}',
        )

        result = await interpreter.interpret("hola")

        assert result.reply == "hola"
        assert result.entities.age is None
        assert result.entities.weight_kg is None
        assert result.entities.height_cm == 168
        assert result.source == InterpretationSource.LLM

    @pytest.mark.asyncio
    async def test_string_slot_index_rejected(self, interpreter, mock_claude_client):
        """Test a non-integer slot index is ignored."""
        self._mock_response(mock_claude_client, '{"reply": "ok", "slot_choice_index": "2"}')

        result = await interpreter.interpret("la segunda")

        assert result.slot_choice_index is None

    @pytest.mark.asyncio
    async def test_rule_overrides_llm_intent(self, interpreter, mock_claude_client):
        """Test the rule intent replaces the LLM's but its reply is kept."""
        self._mock_response(
            mock_claude_client,
            '{"reply": "Claro, te ayudo.", "intent": "general_info", "want_appointment": false}',
        )

        result = await interpreter.interpret("quiero una cita")

        assert result.intent == Intent.BOOK_APPOINTMENT
        assert result.wants_appointment is True
        assert result.reply == "Claro, te ayudo."
        assert result.source == InterpretationSource.LLM

    @pytest.mark.asyncio
    async def test_missing_reply_uses_rules(self, interpreter, mock_claude_client):
        """Test an answer without reply text falls back to the rules."""
        self._mock_response(mock_claude_client, '{"intent": "prices"}')

        result = await interpreter.interpret("¿dónde están?")

        assert result.intent == Intent.LOCATION
        assert result.source == InterpretationSource.RULES

    @pytest.mark.asyncio
    async def test_api_error_uses_rules(self, interpreter, mock_claude_client):
        """Test API failure falls back to the rules."""
        mock_claude_client.generate.side_effect = ClaudeClientError("API error")

        result = await interpreter.interpret("precio de la consulta")

        assert result.intent == Intent.PRICES
        assert result.source == InterpretationSource.RULES

    @pytest.mark.asyncio
    async def test_invalid_json_uses_default(self, interpreter, mock_claude_client):
        """Test garbage output with no rule match gives the default."""
        self._mock_response(mock_claude_client, "not json")

        result = await interpreter.interpret("hola")

        assert result.intent == Intent.GENERAL_INFO
        assert result.source == InterpretationSource.DEFAULT

    @pytest.mark.asyncio
    async def test_empty_message(self, interpreter, mock_claude_client):
        """Test empty input returns the default without calling the LLM."""
        result = await interpreter.interpret("   ")

        assert result.intent == Intent.GENERAL_INFO
        assert result.source == InterpretationSource.DEFAULT
        mock_claude_client.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_llm_disabled(self, mock_claude_client):
        """Test rules-only mode never calls the client."""
        interpreter = Interpreter(claude_client=mock_claude_client, use_llm=False)

        result = await interpreter.interpret("quiero agendar")

        assert result.intent == Intent.BOOK_APPOINTMENT
        mock_claude_client.generate.assert_not_called()


class TestLLMInterpreter:
    """Test the raw LLM backend."""

    def test_parse_raises_on_non_object(self):
        """Test a JSON array is rejected."""
        with pytest.raises(ValueError):
            LLMInterpreter(AsyncMock())._parse_response("[1, 2]")

    def test_accepts_diseases_key(self):
        """Test the alternative conditions key."""
        result = LLMInterpreter(AsyncMock())._parse_response(
            '{"reply": "ok", "entities": {"diseases": ["asma"]}}'
        )

        assert result.entities.conditions == ["asma"]


class TestInterpretationResult:
    """Test InterpretationResult."""

    def test_to_dict(self):
        result = InterpretationResult(
            reply="Hola",
            intent=Intent.PRICES,
            confirm_appointment=ConfirmationType.NO,
        )

        d = result.to_dict()

        assert d["intent"] == "prices"
        assert d["confirm_appointment"] == "no"
        assert d["entities"]["conditions"] == []
        assert d["source"] == "default"
