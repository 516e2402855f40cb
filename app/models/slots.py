"""Appointment slot type shared by availability, booking and sessions."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Slot:
    """A bookable appointment start time.

    ``start`` is timezone-aware and aligned to the configured slot
    granularity. ``label`` is the human-readable text shown to the patient.
    """

    start: datetime
    label: str

    @classmethod
    def from_dict(cls, data: dict) -> "Slot":
        """Create from a stored dict."""
        return cls(
            start=datetime.fromisoformat(data["start"]),
            label=data.get("label", data["start"]),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "start": self.start.isoformat(),
            "label": self.label,
        }
