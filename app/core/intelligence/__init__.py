"""
Intelligence Layer Module

Provides message interpretation, clinical field extraction and
per-contact session state for the intake assistant.

Usage:
    from app.core.intelligence import interpret_message, extract_fields

    result = await interpret_message("¿cuánto cuesta la manga?")
    print(result.intent)  # Intent.PRICES

    fields = await extract_fields("tengo 38, peso 112 kg y mido 1.68")
    print(fields.age, fields.weight_kg, fields.height_cm)  # 38 112.0 168
"""

# Interpretation
from app.core.intelligence.intent.types import (
    Intent,
    ConfirmationType,
    Entities,
    InterpretationResult,
    InterpretationSource,
)
from app.core.intelligence.intent.classifier import (
    Interpreter,
    get_interpreter,
    interpret_message,
)

# Field Extraction
from app.core.intelligence.extraction.types import PatientFields
from app.core.intelligence.extraction.extractor import (
    FieldExtractor,
    extract_fields_regex,
    get_field_extractor,
    extract_fields,
)

# Sessions
from app.core.intelligence.session.models import (
    Flow,
    PatientData,
    BookingData,
    IdleSession,
    TriageSession,
    BookingSession,
    Session,
    check_invariants,
)
from app.core.intelligence.session.store import (
    SessionStore,
    InMemorySessionStore,
    RedisSessionStore,
    ContactLocks,
    get_session_store,
)

__all__ = [
    # Interpretation
    "Intent",
    "ConfirmationType",
    "Entities",
    "InterpretationResult",
    "InterpretationSource",
    "Interpreter",
    "get_interpreter",
    "interpret_message",
    # Extraction
    "PatientFields",
    "FieldExtractor",
    "extract_fields_regex",
    "get_field_extractor",
    "extract_fields",
    # Sessions
    "Flow",
    "PatientData",
    "BookingData",
    "IdleSession",
    "TriageSession",
    "BookingSession",
    "Session",
    "check_invariants",
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "ContactLocks",
    "get_session_store",
]
