"""
Message interpretation.

The LLM backend (Claude) proposes a reply, an intent and structured
shortcuts; the deterministic rules always run as well and override the
LLM's intent when they match. Without an LLM (disabled, unavailable or
returning garbage) the rules alone decide.
"""

import logging
import time
from typing import Optional

from app.config import settings
from app.infra.claude import ClaudeClient, ClaudeClientError, get_claude_client, parse_json_object
from app.core.intelligence.extraction.types import coerce_conditions, coerce_float, coerce_int
from .rules import RuleInterpreter, default_interpretation, match_intent
from .types import (
    ConfirmationType,
    Entities,
    Intent,
    InterpretationResult,
    InterpretationSource,
)

logger = logging.getLogger(__name__)


INTERPRETATION_SYSTEM_PROMPT = """Eres el asistente de WhatsApp de {clinic_name}.
Responde breve, claro, cálido, sin diagnósticos personalizados por chat.
Precios fijos: consulta ${consultation_price} (≈{consultation_minutes} min). Cirugía: manga desde ${sleeve_price}; bypass desde ${bypass_price} (se confirma en consulta).
Dirección: {clinic_address}. Tel {clinic_phone}.
Si detectas datos de triage (edad/peso/estatura/enfermedades), extráelos.
Si el usuario parece querer cita, indícalo.
Devuelve SOLO JSON con esta forma:
{{
  "reply": "texto de respuesta",
  "intent": "one of: general_info | location | prices | bariatric_triage | book_appointment | other_gi | not_offered | human",
  "entities": {{ "age": number|null, "weight_kg": number|null, "height_cm": number|null, "conditions": string[] }},
  "want_appointment": boolean,
  "confirm_appointment": "yes"|"no"|null,
  "slot_choice_index": number|null
}}"""


class LLMInterpreter:
    """Claude-backed interpreter returning the InterpretationResult shape."""

    def __init__(self, claude_client: ClaudeClient):
        """Initialize interpreter.

        Args:
            claude_client: Claude client
        """
        self._client = claude_client

    async def interpret(
        self,
        message: str,
        contact_name: Optional[str] = None,
        contact_id: Optional[str] = None,
    ) -> InterpretationResult:
        """Interpret a message with Claude.

        Raises:
            ClaudeClientError: If the API call fails
            ValueError: If the reply is not a usable JSON object
        """
        system_prompt = INTERPRETATION_SYSTEM_PROMPT.format(
            clinic_name=settings.clinic_name,
            clinic_address=settings.clinic_address,
            clinic_phone=settings.clinic_phone,
            consultation_price=settings.consultation_price,
            consultation_minutes=settings.consultation_minutes,
            sleeve_price=settings.sleeve_price,
            bypass_price=settings.bypass_price,
        )
        prompt = (
            f"Paciente: {contact_name or 'desconocido'} ({contact_id or 'sin número'})\n"
            f'Mensaje: """{message}"""'
        )

        response = await self._client.generate(
            prompt=prompt,
            system_prompt=system_prompt,
            max_tokens=400,
            temperature=0.3,
        )
        return self._parse_response(response.content)

    def _parse_response(self, content: str) -> InterpretationResult:
        """Parse and sanitise the model's JSON."""
        data = parse_json_object(content)

        reply = data.get("reply")
        if not isinstance(reply, str) or not reply.strip():
            raise ValueError("Missing reply text")

        try:
            intent = Intent(str(data.get("intent", "general_info")).lower())
        except ValueError:
            intent = Intent.GENERAL_INFO

        raw_entities = data.get("entities")
        if not isinstance(raw_entities, dict):
            raw_entities = {}
        entities = Entities(
            age=coerce_int(raw_entities.get("age")),
            weight_kg=coerce_float(raw_entities.get("weight_kg")),
            height_cm=coerce_int(raw_entities.get("height_cm")),
            conditions=coerce_conditions(
                raw_entities.get("conditions", raw_entities.get("diseases"))
            ),
        )

        confirm = None
        if isinstance(data.get("confirm_appointment"), str):
            try:
                confirm = ConfirmationType(data["confirm_appointment"].lower())
            except ValueError:
                pass

        slot_index = data.get("slot_choice_index")
        if isinstance(slot_index, bool) or not isinstance(slot_index, int):
            slot_index = None

        return InterpretationResult(
            reply=reply.strip(),
            intent=intent,
            entities=entities,
            wants_appointment=data.get("want_appointment") is True,
            confirm_appointment=confirm,
            slot_choice_index=slot_index,
            source=InterpretationSource.LLM,
        )


class Interpreter:
    """
    Interpretation facade.

    interpret() never raises: malformed input or a failing backend
    degrades to the rule result, and from there to the safe default.
    """

    def __init__(
        self,
        claude_client: Optional[ClaudeClient] = None,
        use_llm: Optional[bool] = None,
    ):
        """Initialize interpreter.

        Args:
            claude_client: Optional Claude client (for testing)
            use_llm: Force the LLM backend on/off (defaults to whether a client was given)
        """
        self._client = claude_client
        self._use_llm = use_llm if use_llm is not None else claude_client is not None
        self._rules = RuleInterpreter()

    async def _get_client(self) -> Optional[ClaudeClient]:
        """Get Claude client, or None when the LLM is disabled."""
        if self._client is None:
            self._client = await get_claude_client()
        return self._client

    async def interpret(
        self,
        message: str,
        contact_name: Optional[str] = None,
        contact_id: Optional[str] = None,
    ) -> InterpretationResult:
        """
        Interpret a patient message.

        Args:
            message: Patient's message
            contact_name: Contact display name
            contact_id: Contact identifier

        Returns:
            InterpretationResult
        """
        if not isinstance(message, str) or not message.strip():
            return default_interpretation()

        message = message.strip()
        rules_result = self._rules.interpret(message, contact_name)
        if not self._use_llm:
            return rules_result

        start_time = time.time()
        try:
            client = await self._get_client()
            if client is None:
                return rules_result

            result = await LLMInterpreter(client).interpret(message, contact_name, contact_id)

        except (ClaudeClientError, ValueError) as e:
            logger.warning(f"LLM interpretation failed, using rules: {e}")
            return rules_result

        # Deterministic rules override the model's intent
        rule_intent = match_intent(message)
        if rule_intent is not None and rule_intent != result.intent:
            logger.debug(f"Rule intent {rule_intent.value} overrides LLM intent {result.intent.value}")
            result.intent = rule_intent
            result.wants_appointment = result.wants_appointment or rule_intent == Intent.BOOK_APPOINTMENT

        logger.debug(
            f"Interpreted intent: {result.intent.value} "
            f"in {(time.time() - start_time) * 1000:.0f}ms"
        )
        return result


# Singleton
_interpreter: Optional[Interpreter] = None


def get_interpreter() -> Interpreter:
    """Get singleton Interpreter."""
    global _interpreter
    if _interpreter is None:
        _interpreter = Interpreter(use_llm=settings.llm_enabled)
    return _interpreter


async def interpret_message(
    message: str,
    contact_name: Optional[str] = None,
    contact_id: Optional[str] = None,
) -> InterpretationResult:
    """Convenience function to interpret a message."""
    return await get_interpreter().interpret(message, contact_name, contact_id)
