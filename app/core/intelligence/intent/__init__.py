"""Message interpretation module."""

from .types import (
    Intent,
    ConfirmationType,
    Entities,
    InterpretationResult,
    InterpretationSource,
)
from .rules import RuleInterpreter, match_intent, default_interpretation
from .classifier import (
    LLMInterpreter,
    Interpreter,
    get_interpreter,
    interpret_message,
)

__all__ = [
    # Types
    "Intent",
    "ConfirmationType",
    "Entities",
    "InterpretationResult",
    "InterpretationSource",
    # Rules
    "RuleInterpreter",
    "match_intent",
    "default_interpretation",
    # Interpreter
    "LLMInterpreter",
    "Interpreter",
    "get_interpreter",
    "interpret_message",
]
