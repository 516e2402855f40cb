"""
Scheduling Module

Provides the dialogue engine, BMI triage, availability and booking on
Google Calendar, and reply generation for the intake assistant.

Usage:
    from app.core.scheduling import process_message
    from app.models.messages import InboundMessage

    response = await process_message(
        InboundMessage(contact_id="5217710000000", text="quiero agendar"),
    )
    print(response.reply)  # Slot list
    print(response.flow, response.step)  # Flow.BOOKING 1
"""

# Calendar Client
from app.core.scheduling.calendar_client import (
    GoogleCalendarClient,
    CalendarClientError,
    get_calendar_client,
)

# Availability and Booking
from app.core.scheduling.availability import (
    AvailabilityService,
    format_slot_label,
    get_availability_service,
)
from app.core.scheduling.booking import (
    BookingSink,
    BookingResult,
    get_booking_sink,
)

# Triage
from app.core.scheduling.triage import (
    bmi,
    merge_patient_data,
    missing_fields,
    join_natural,
)

# Response Generator
from app.core.scheduling.response import (
    ResponseGenerator,
    get_response_generator,
)

# Conversation Flow
from app.core.scheduling.flow import (
    ConversationFlow,
    FlowResult,
)

# Dialogue Engine (main orchestrator)
from app.core.scheduling.engine import (
    DialogueEngine,
    EngineResponse,
    get_dialogue_engine,
    process_message,
)

__all__ = [
    # Calendar Client
    "GoogleCalendarClient",
    "CalendarClientError",
    "get_calendar_client",
    # Availability and Booking
    "AvailabilityService",
    "format_slot_label",
    "get_availability_service",
    "BookingSink",
    "BookingResult",
    "get_booking_sink",
    # Triage
    "bmi",
    "merge_patient_data",
    "missing_fields",
    "join_natural",
    # Response Generator
    "ResponseGenerator",
    "get_response_generator",
    # Conversation Flow
    "ConversationFlow",
    "FlowResult",
    # Dialogue Engine
    "DialogueEngine",
    "EngineResponse",
    "get_dialogue_engine",
    "process_message",
]
