"""Intent types for message interpretation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Intent(str, Enum):
    """Patient intent categories."""

    GENERAL_INFO = "general_info"          # Anything else; handled by the fallback tier
    LOCATION = "location"                  # Address, how to get there
    PRICES = "prices"                      # Consultation / surgery costs
    BARIATRIC_TRIAGE = "bariatric_triage"  # Sleeve, bypass, balloon, obesity
    BOOK_APPOINTMENT = "book_appointment"  # Wants a consultation slot
    OTHER_GI = "other_gi"                  # Gallbladder, hernia, reflux...
    NOT_OFFERED = "not_offered"            # Procedures the clinic does not perform
    HUMAN = "human"                        # Wants a human agent


class ConfirmationType(str, Enum):
    """Types of confirmation responses."""

    YES = "yes"
    NO = "no"


class InterpretationSource(str, Enum):
    """Which backend produced an interpretation."""

    RULES = "rules"
    LLM = "llm"
    DEFAULT = "default"


@dataclass
class Entities:
    """Clinical data mentioned in a message."""

    age: Optional[int] = None
    weight_kg: Optional[float] = None
    height_cm: Optional[int] = None
    conditions: list[str] = field(default_factory=list)


@dataclass
class InterpretationResult:
    """Result of interpreting one inbound message."""

    reply: str
    intent: Intent = Intent.GENERAL_INFO
    entities: Entities = field(default_factory=Entities)
    wants_appointment: bool = False

    # Structured shortcuts proposed by the LLM; always re-validated
    confirm_appointment: Optional[ConfirmationType] = None
    slot_choice_index: Optional[int] = None  # 1-based

    source: InterpretationSource = InterpretationSource.DEFAULT

    @property
    def signals_booking(self) -> bool:
        """Check if the message asks for an appointment."""
        return self.wants_appointment or self.intent == Intent.BOOK_APPOINTMENT

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "reply": self.reply,
            "intent": self.intent.value,
            "entities": {
                "age": self.entities.age,
                "weight_kg": self.entities.weight_kg,
                "height_cm": self.entities.height_cm,
                "conditions": list(self.entities.conditions),
            },
            "wants_appointment": self.wants_appointment,
            "confirm_appointment": (
                self.confirm_appointment.value if self.confirm_appointment else None
            ),
            "slot_choice_index": self.slot_choice_index,
            "source": self.source.value,
        }
