"""
Deterministic intent rules.

Ordered keyword patterns for the clinic's Spanish-speaking patients.
The first matching pattern wins; order matters because messages often
mention more than one topic ("¿cuánto cuesta la manga?" is a price
question, not a triage request).
"""

import logging
import re
from typing import Optional

from app.config import settings
from .types import Intent, InterpretationResult, InterpretationSource

logger = logging.getLogger(__name__)


INTENT_PATTERNS: list[tuple[Intent, re.Pattern]] = [
    (Intent.LOCATION, re.compile(r"(ubicaci[oó]n|direcci[oó]n|ple[tu]ora|zona plateada|d[oó]nde)")),
    (Intent.BOOK_APPOINTMENT, re.compile(r"(cita|agendar|valoraci[oó]n|horario|disponibilidad)")),
    (Intent.PRICES, re.compile(r"(costo|precio|cu[aá]nto)")),
    (Intent.BARIATRIC_TRIAGE, re.compile(r"(manga|bypass|bal[oó]n|bari[aá]tric|obesidad)")),
    (Intent.OTHER_GI, re.compile(r"(ves[ií]cula|colecist|hernia|reflujo|acalasia|gastritis|colitis|apendic)")),
    (Intent.NOT_OFFERED, re.compile(r"(cpre|endoscop|diarrea cr[oó]nica)")),
    (Intent.HUMAN, re.compile(r"(humano|asesor|recepci[oó]n)")),
]


def match_intent(text: str) -> Optional[Intent]:
    """Return the first rule intent matching the text, if any."""
    lowered = (text or "").lower()
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(lowered):
            return intent
    return None


class RuleInterpreter:
    """Keyword classifier. Never raises."""

    def interpret(self, message: str, contact_name: Optional[str] = None) -> InterpretationResult:
        """Classify a message with the ordered intent patterns.

        Args:
            message: Raw message text
            contact_name: Contact display name (unused by the rules)

        Returns:
            InterpretationResult with the matched intent, or general_info
        """
        intent = match_intent(message)
        if intent is None:
            return default_interpretation()

        logger.debug(f"Rule intent: {intent.value}")
        return InterpretationResult(
            reply=settings.fallback_reply,
            intent=intent,
            wants_appointment=intent == Intent.BOOK_APPOINTMENT,
            source=InterpretationSource.RULES,
        )


def default_interpretation() -> InterpretationResult:
    """Safe default used for malformed input and backend failures."""
    return InterpretationResult(
        reply=settings.fallback_reply,
        intent=Intent.GENERAL_INFO,
        source=InterpretationSource.DEFAULT,
    )
