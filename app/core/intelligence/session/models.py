"""
Per-contact session models.

A session is exactly one of IdleSession, TriageSession or BookingSession.
The variant decides the flow, so a session can never be in two flows and
an idle session cannot carry patient or booking data.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from app.models.slots import Slot


class Flow(str, Enum):
    """Active sub-dialogue."""

    NONE = "none"
    TRIAGE = "triage"
    BOOKING = "booking"


@dataclass
class PatientData:
    """Clinical data captured during triage."""

    age: Optional[int] = None
    weight_kg: Optional[float] = None
    height_cm: Optional[int] = None
    conditions: list[str] = field(default_factory=list)
    bmi: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "age": self.age,
            "weight_kg": self.weight_kg,
            "height_cm": self.height_cm,
            "conditions": list(self.conditions),
            "bmi": self.bmi,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PatientData":
        """Create from dictionary."""
        return cls(
            age=data.get("age"),
            weight_kg=data.get("weight_kg"),
            height_cm=data.get("height_cm"),
            conditions=list(data.get("conditions") or []),
            bmi=data.get("bmi"),
        )


@dataclass
class BookingData:
    """Booking sub-dialogue data."""

    patient_name: Optional[str] = None
    candidate_slots: list[Slot] = field(default_factory=list)
    chosen_slot: Optional[Slot] = None

    # Step 0 was entered by offering to book rather than by a request
    offered: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "patient_name": self.patient_name,
            "candidate_slots": [slot.to_dict() for slot in self.candidate_slots],
            "chosen_slot": self.chosen_slot.to_dict() if self.chosen_slot else None,
            "offered": self.offered,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BookingData":
        """Create from dictionary."""
        chosen = data.get("chosen_slot")
        return cls(
            patient_name=data.get("patient_name"),
            candidate_slots=[Slot.from_dict(s) for s in data.get("candidate_slots") or []],
            chosen_slot=Slot.from_dict(chosen) if chosen else None,
            offered=bool(data.get("offered", False)),
        )


@dataclass(frozen=True)
class IdleSession:
    """No active flow."""

    flow = Flow.NONE

    @property
    def step(self) -> int:
        return 0


@dataclass(frozen=True)
class TriageSession:
    """Collecting age, weight and height."""

    step: int = 0
    patient: PatientData = field(default_factory=PatientData)

    flow = Flow.TRIAGE


@dataclass(frozen=True)
class BookingSession:
    """Three-step booking: name + slots, slot choice, confirmation."""

    step: int = 0
    patient: PatientData = field(default_factory=PatientData)
    booking: BookingData = field(default_factory=BookingData)

    flow = Flow.BOOKING


Session = Union[IdleSession, TriageSession, BookingSession]

BOOKING_STEPS = (0, 1, 2)


class SessionInvariantError(Exception):
    """Session violates a structural invariant."""
    pass


def check_invariants(session: Session) -> None:
    """
    Check the structural invariants of a session.

    Raises:
        SessionInvariantError: If the session is not in a legal state
    """
    if isinstance(session, IdleSession):
        return

    if isinstance(session, TriageSession):
        if session.step < 0:
            raise SessionInvariantError(f"Triage step must be >= 0, got {session.step}")
        return

    if isinstance(session, BookingSession):
        if session.step not in BOOKING_STEPS:
            raise SessionInvariantError(f"Booking step must be 0, 1 or 2, got {session.step}")
        if session.step >= 1 and not session.booking.candidate_slots:
            raise SessionInvariantError("Booking step >= 1 requires candidate slots")
        if (session.booking.chosen_slot is not None) != (session.step == 2):
            raise SessionInvariantError("Chosen slot is set only at booking step 2")
        return

    raise SessionInvariantError(f"Unknown session type: {type(session).__name__}")


def session_to_dict(session: Session) -> dict:
    """Convert a session to a JSON-safe dictionary."""
    data = {"flow": session.flow.value, "step": session.step}
    if isinstance(session, (TriageSession, BookingSession)):
        data["patient"] = session.patient.to_dict()
    if isinstance(session, BookingSession):
        data["booking"] = session.booking.to_dict()
    return data


def session_from_dict(data: dict) -> Session:
    """
    Create a session from its dictionary form.

    Raises:
        ValueError: If the flow is unknown or the result is not a legal session
    """
    flow = Flow(data.get("flow", Flow.NONE.value))
    step = int(data.get("step", 0))

    if flow == Flow.NONE:
        return IdleSession()

    patient = PatientData.from_dict(data.get("patient") or {})
    if flow == Flow.TRIAGE:
        session: Session = TriageSession(step=step, patient=patient)
    else:
        session = BookingSession(
            step=step,
            patient=patient,
            booking=BookingData.from_dict(data.get("booking") or {}),
        )

    try:
        check_invariants(session)
    except SessionInvariantError as e:
        raise ValueError(str(e)) from e
    return session


def session_to_json(session: Session) -> str:
    """Convert to JSON string for storage."""
    return json.dumps(session_to_dict(session))


def session_from_json(json_str: str) -> Session:
    """Create from JSON string."""
    return session_from_dict(json.loads(json_str))
