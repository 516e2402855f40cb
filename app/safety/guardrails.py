"""
Immediate-Exit Guardrails

Checked before any interpretation. A match produces a fixed reply and
ends the turn without reading or writing the contact's session.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ExitReason(str, Enum):
    """Why a turn was short-circuited."""

    EMERGENCY = "emergency"
    EXCLUDED_PROCEDURE = "excluded_procedure"


@dataclass
class GuardrailResult:
    """Result of the guardrail check."""

    reason: ExitReason
    reply: str
    matched: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "reason": self.reason.value,
            "reply": self.reply,
            "matched": self.matched,
        }


# ==================================
# Guardrail Patterns
# ==================================

# Pattern structure: (regex, reason, fixed reply); checked in order
GUARDRAIL_PATTERNS: list[tuple[re.Pattern, ExitReason, str]] = [
    (
        re.compile(r"(urgencia|emergencia|sangrado|dolor intenso|fiebre alta)", re.IGNORECASE),
        ExitReason.EMERGENCY,
        "Si es una urgencia, por favor acude a urgencias o llama al 911.",
    ),
    (
        re.compile(r"(cpre|endoscop|diarrea cr[oó]nica)", re.IGNORECASE),
        ExitReason.EXCLUDED_PROCEDURE,
        "No realizamos **CPRE, endoscopias** ni manejo de **diarrea crónica**. "
        "Podemos orientarte con un centro especializado.",
    ),
]


def check_guardrails(text: str) -> Optional[GuardrailResult]:
    """
    Check a message against the immediate-exit rules.

    Args:
        text: Raw message text

    Returns:
        GuardrailResult for the first matching rule, or None
    """
    for pattern, reason, reply in GUARDRAIL_PATTERNS:
        match = pattern.search(text or "")
        if match:
            logger.info(f"Guardrail triggered: {reason.value}")
            return GuardrailResult(reason=reason, reply=reply, matched=match.group(0))
    return None


def is_emergency(text: str) -> bool:
    """Check if a message mentions an emergency."""
    result = check_guardrails(text)
    return result is not None and result.reason == ExitReason.EMERGENCY
