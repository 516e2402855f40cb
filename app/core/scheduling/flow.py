"""
Conversation Flow Manager.

The per-contact state machine: idle routing, BMI triage and the
three-step booking protocol. Every AI-proposed slot index or
confirmation goes through the same deterministic gate as typed input.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional

from app.config import settings
from app.core.intelligence.extraction.extractor import FieldExtractor, extract_fields_regex, get_field_extractor
from app.core.intelligence.extraction.types import PatientFields
from app.core.intelligence.intent.types import ConfirmationType, Intent, InterpretationResult
from app.core.intelligence.session.models import (
    BookingData,
    BookingSession,
    IdleSession,
    PatientData,
    Session,
    TriageSession,
)
from app.models.slots import Slot
from .availability import AvailabilityService, get_availability_service
from .booking import BookingResult, BookingSink, get_booking_sink
from .calendar_client import CalendarClientError
from .response import ResponseGenerator, get_response_generator
from .triage import SURGICAL_BMI_THRESHOLD, bmi, join_natural, merge_patient_data, missing_fields

logger = logging.getLogger(__name__)


CANCEL_PATTERN = re.compile(r"\b(cancelar|salir|men[uú])\b")
DECLINE_PATTERN = re.compile(r"^no\b")
YES_PATTERN = re.compile(r"^s[ií]")
NO_PATTERN = re.compile(r"^n(o)?")
LEADING_INT_PATTERN = re.compile(r"^\s*(\d+)(.*)$", re.DOTALL)
NAME_PATTERN = re.compile(r"^[a-záéíóúüñ][a-záéíóúüñ'.\- ]*$", re.IGNORECASE)

# Words that show a reply is not a name
NON_NAME_WORDS = {
    "si", "sí", "no", "ok", "okay", "claro", "va", "sale", "dale", "bueno", "perfecto",
    "gracias", "hola", "buenos", "buenas", "dias", "días", "tardes", "noches",
    "quiero", "quisiera", "me", "gustaria", "gustaría", "agendar", "cita", "valoracion",
    "valoración", "por", "favor", "porfa", "de", "acuerdo", "soy", "mi", "nombre", "es",
}


def looks_like_name(text: str) -> bool:
    """Check if a reply plausibly is a person's name."""
    candidate = (text or "").strip()
    if not candidate or len(candidate) > 80 or not NAME_PATTERN.match(candidate):
        return False
    words = candidate.lower().split()
    if len(words) > 5:
        return False
    return not any(word.strip(".'-") in NON_NAME_WORDS for word in words)


def parse_slot_choice(text: str) -> tuple[Optional[int], str]:
    """Parse the leading integer of a reply.

    Returns:
        (1-based index or None, trailing text)
    """
    match = LEADING_INT_PATTERN.match(text or "")
    if not match:
        return None, ""
    trailing = match.group(2).strip().lstrip(").-:,").strip()
    return int(match.group(1)), trailing


def parse_confirmation(text: str) -> Optional[ConfirmationType]:
    """Regex yes/no; None when inconclusive."""
    lowered = (text or "").strip().lower().lstrip("¡¿ ")
    if YES_PATTERN.match(lowered):
        return ConfirmationType.YES
    if NO_PATTERN.match(lowered):
        return ConfirmationType.NO
    return None


def resolve_slot_index(
    text: str,
    ai_index: Optional[int],
    candidate_count: int,
) -> Optional[int]:
    """
    Resolve the chosen slot.

    The typed number is authoritative; the AI index is only used when no
    number was typed. Either way the result must be within 1..count.
    """
    index, _ = parse_slot_choice(text)
    if index is None:
        index = ai_index
    if index is None or not 1 <= index <= candidate_count:
        return None
    return index


def resolve_confirmation(
    text: str,
    ai_confirmation: Optional[ConfirmationType],
) -> Optional[ConfirmationType]:
    """Regex confirmation, else the AI one, else None (ambiguous)."""
    return parse_confirmation(text) or ai_confirmation


@dataclass
class FlowResult:
    """Outcome of one state-machine step."""

    session: Session
    reply: Optional[str] = None  # None hands the turn to the fallback tier
    booking: Optional[BookingResult] = None


class ConversationFlow:
    """
    State machine for intake conversations.

    States:
    - idle: entry rules pick a canned reply or a flow
    - triage: collect age, weight and height, then branch on BMI
    - booking: step 0 list slots, step 1 choose, step 2 confirm
    """

    def __init__(
        self,
        field_extractor: Optional[FieldExtractor] = None,
        availability: Optional[AvailabilityService] = None,
        booking_sink: Optional[BookingSink] = None,
        responses: Optional[ResponseGenerator] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize flow manager.

        Args:
            field_extractor: Clinical field extractor
            availability: Free-slot listing
            booking_sink: Tentative event writer
            responses: Reply templates
            timeout: Per-call bound for external collaborators, in seconds
        """
        self._extractor = field_extractor or get_field_extractor()
        self._availability = availability or get_availability_service()
        self._sink = booking_sink or get_booking_sink()
        self._responses = responses or get_response_generator()
        self._timeout = timeout if timeout is not None else settings.external_call_timeout_seconds

    async def process(
        self,
        session: Session,
        text: str,
        interpretation: InterpretationResult,
        contact_name: Optional[str] = None,
        contact_id: Optional[str] = None,
    ) -> FlowResult:
        """Advance the state machine by one turn.

        Args:
            session: Current session
            text: Patient's message
            interpretation: Interpretation of the message
            contact_name: Contact display name
            contact_id: Contact identifier

        Returns:
            FlowResult with the next session and the reply, if any
        """
        lowered = (text or "").strip().lower()

        # Preemption
        if not isinstance(session, IdleSession) and CANCEL_PATTERN.search(lowered):
            logger.debug(f"Flow {session.flow.value} cancelled by contact")
            return FlowResult(IdleSession(), self._responses.cancelled())

        if interpretation.intent == Intent.HUMAN:
            return FlowResult(IdleSession(), self._responses.handoff())

        if isinstance(session, TriageSession):
            return await self._triage(session, text, interpretation, contact_name)

        if isinstance(session, BookingSession):
            return await self._booking(session, text, interpretation, contact_name, contact_id)

        return await self._route_idle(text, interpretation, contact_name)

    # === Idle ===

    async def _route_idle(
        self,
        text: str,
        interpretation: InterpretationResult,
        contact_name: Optional[str],
    ) -> FlowResult:
        intent = interpretation.intent
        responses = self._responses

        if intent == Intent.LOCATION:
            return FlowResult(IdleSession(), responses.location())

        if intent == Intent.PRICES:
            return FlowResult(IdleSession(), responses.prices())

        if intent == Intent.NOT_OFFERED:
            return FlowResult(IdleSession(), responses.not_offered())

        if intent == Intent.OTHER_GI:
            session = BookingSession(booking=BookingData(offered=True))
            return FlowResult(session, responses.other_gi())

        if intent == Intent.BARIATRIC_TRIAGE:
            return self._triage_start(TriageSession())

        if interpretation.signals_booking:
            return await self._booking_start(BookingSession(), text, contact_name)

        return FlowResult(IdleSession())

    # === Triage ===

    def _triage_start(self, session: TriageSession) -> FlowResult:
        logger.debug("Triage step 0 -> 1")
        return FlowResult(
            TriageSession(step=1, patient=session.patient),
            self._responses.triage_prompt(),
        )

    async def _triage(
        self,
        session: TriageSession,
        text: str,
        interpretation: InterpretationResult,
        contact_name: Optional[str],
    ) -> FlowResult:
        if session.step == 0:
            return self._triage_start(session)

        fields = await self._extract(text)
        entities = interpretation.entities
        fields = fields.fill_from(PatientFields(
            age=entities.age,
            weight_kg=entities.weight_kg,
            height_cm=entities.height_cm,
            conditions=list(entities.conditions),
        ))
        patient = merge_patient_data(session.patient, fields)

        missing = missing_fields(patient)
        if missing:
            return FlowResult(
                TriageSession(step=session.step, patient=patient),
                self._responses.missing_fields(join_natural(missing)),
            )

        value = bmi(patient.weight_kg, patient.height_cm)
        if value is None:
            patient.weight_kg = None
            patient.height_cm = None
            return FlowResult(
                TriageSession(step=session.step, patient=patient),
                self._responses.reconfirm_measurements(),
            )

        patient.bmi = value
        logger.info(f"Triage complete: BMI {value}")

        if value >= SURGICAL_BMI_THRESHOLD:
            reply = self._responses.surgical_candidate(value)
            booking = BookingSession(patient=patient, booking=BookingData(offered=True))
        else:
            reply = self._responses.non_surgical(value)
            if not interpretation.signals_booking:
                return FlowResult(IdleSession(), reply)
            booking = BookingSession(patient=patient)

        if interpretation.signals_booking:
            result = await self._booking_start(booking, text, contact_name)
            result.reply = f"{reply}\n\n{result.reply}"
            return result

        return FlowResult(booking, reply)

    # === Booking ===

    async def _booking(
        self,
        session: BookingSession,
        text: str,
        interpretation: InterpretationResult,
        contact_name: Optional[str],
        contact_id: Optional[str],
    ) -> FlowResult:
        if session.step == 0:
            if session.booking.offered and DECLINE_PATTERN.match(text.strip().lower()):
                return FlowResult(IdleSession(), self._responses.declined())
            return await self._booking_start(session, text, contact_name)

        if session.step == 1:
            return self._booking_choose(session, text, interpretation)

        return await self._booking_confirm(session, text, interpretation, contact_name, contact_id)

    async def _booking_start(
        self,
        session: BookingSession,
        text: str,
        contact_name: Optional[str],
    ) -> FlowResult:
        """Step 0: capture the name and list free slots."""
        name = session.booking.patient_name
        if name is None:
            if looks_like_name(text):
                name = text.strip()
            elif contact_name and contact_name.strip():
                name = contact_name.strip()

        slots = await self._list_slots()
        if not slots:
            return FlowResult(IdleSession(), self._responses.no_slots())

        logger.debug(f"Booking step 0 -> 1 with {len(slots)} slots")
        return FlowResult(
            BookingSession(
                step=1,
                patient=session.patient,
                booking=BookingData(patient_name=name, candidate_slots=slots),
            ),
            self._responses.format_slots(slots, ask_name=name is None),
        )

    def _booking_choose(
        self,
        session: BookingSession,
        text: str,
        interpretation: InterpretationResult,
    ) -> FlowResult:
        """Step 1: pick a slot by number."""
        slots = session.booking.candidate_slots
        index = resolve_slot_index(text, interpretation.slot_choice_index, len(slots))
        if index is None:
            return FlowResult(session, self._responses.choose_slot_again())

        name = session.booking.patient_name
        if name is None:
            _, trailing = parse_slot_choice(text)
            if looks_like_name(trailing):
                name = trailing

        chosen = slots[index - 1]
        logger.debug(f"Booking step 1 -> 2, slot {index}")
        return FlowResult(
            BookingSession(
                step=2,
                patient=session.patient,
                booking=BookingData(patient_name=name, candidate_slots=slots, chosen_slot=chosen),
            ),
            self._responses.confirm_slot(chosen),
        )

    async def _booking_confirm(
        self,
        session: BookingSession,
        text: str,
        interpretation: InterpretationResult,
        contact_name: Optional[str],
        contact_id: Optional[str],
    ) -> FlowResult:
        """Step 2: yes books, no resets, anything else asks again."""
        chosen = session.booking.chosen_slot
        decision = resolve_confirmation(text, interpretation.confirm_appointment)

        if decision is None:
            return FlowResult(session, self._responses.confirm_again(chosen))

        if decision == ConfirmationType.NO:
            return FlowResult(IdleSession(), self._responses.declined())

        name = session.booking.patient_name or (contact_name or "").strip() or "Paciente"
        result = await self._book(chosen, name, contact_id)
        reply = self._responses.booked() if result.success else self._responses.booking_failed()
        return FlowResult(IdleSession(), reply, booking=result)

    # === Collaborators ===

    async def _extract(self, text: str) -> PatientFields:
        try:
            return await asyncio.wait_for(self._extractor.extract(text), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Field extraction timed out, using regex only")
            return extract_fields_regex(text)

    async def _list_slots(self) -> list[Slot]:
        try:
            return await asyncio.wait_for(
                self._availability.list_free_slots(),
                timeout=self._timeout,
            )
        except CalendarClientError as e:
            logger.warning(f"Availability lookup failed: {e}")
        except asyncio.TimeoutError:
            logger.warning("Availability lookup timed out")
        return []

    async def _book(self, slot: Slot, patient_name: str, contact_id: Optional[str]) -> BookingResult:
        try:
            return await asyncio.wait_for(
                self._sink.create_tentative_event(
                    start=slot.start,
                    duration_minutes=settings.calendar_slot_minutes,
                    summary=self._responses.event_summary(patient_name),
                    description=self._responses.event_description(patient_name, contact_id),
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Tentative booking timed out")
            return BookingResult(success=False, error="timeout")
