"""
Safety Module

Immediate-exit guardrails for emergencies and procedures the clinic
does not offer.
"""

from app.safety.guardrails import (
    ExitReason,
    GuardrailResult,
    GUARDRAIL_PATTERNS,
    check_guardrails,
    is_emergency,
)

__all__ = [
    "ExitReason",
    "GuardrailResult",
    "GUARDRAIL_PATTERNS",
    "check_guardrails",
    "is_emergency",
]
