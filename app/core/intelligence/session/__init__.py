"""Per-contact session state and storage."""

from .models import (
    Flow,
    PatientData,
    BookingData,
    IdleSession,
    TriageSession,
    BookingSession,
    Session,
    SessionInvariantError,
    check_invariants,
    session_to_dict,
    session_from_dict,
    session_to_json,
    session_from_json,
)
from .store import (
    SessionStore,
    InMemorySessionStore,
    RedisSessionStore,
    ContactLocks,
    get_session_store,
)

__all__ = [
    # Models
    "Flow",
    "PatientData",
    "BookingData",
    "IdleSession",
    "TriageSession",
    "BookingSession",
    "Session",
    "SessionInvariantError",
    "check_invariants",
    "session_to_dict",
    "session_from_dict",
    "session_to_json",
    "session_from_json",
    # Store
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "ContactLocks",
    "get_session_store",
]
