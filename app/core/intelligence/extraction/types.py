"""Types for clinical field extraction."""

import math
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class PatientFields:
    """Clinical fields extracted from one free-text message."""

    age: Optional[int] = None
    weight_kg: Optional[float] = None
    height_cm: Optional[int] = None
    conditions: list[str] = field(default_factory=list)

    # "regex", "llm+regex" or "regex-fallback"
    source: str = "regex"

    def has_any(self) -> bool:
        """Check if any field was extracted."""
        return any([
            self.age is not None,
            self.weight_kg is not None,
            self.height_cm is not None,
            self.conditions,
        ])

    def fill_from(self, other: "PatientFields") -> "PatientFields":
        """Return a copy with missing fields taken from ``other``.

        Values already present on ``self`` always win.
        """
        return PatientFields(
            age=self.age if self.age is not None else other.age,
            weight_kg=self.weight_kg if self.weight_kg is not None else other.weight_kg,
            height_cm=self.height_cm if self.height_cm is not None else other.height_cm,
            conditions=list(self.conditions) if self.conditions else list(other.conditions),
            source=self.source,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "age": self.age,
            "weight_kg": self.weight_kg,
            "height_cm": self.height_cm,
            "conditions": list(self.conditions),
            "source": self.source,
        }


def coerce_int(value: Any) -> Optional[int]:
    """Coerce a loosely-typed value to a positive int, or None."""
    number = coerce_float(value)
    if number is None:
        return None
    return int(round(number))


def coerce_float(value: Any) -> Optional[float]:
    """Coerce a loosely-typed value to a positive float, or None.

    Accepts numbers and numeric strings ("112", "1,68"). Booleans, zero,
    negatives, infinities and anything unparsable become None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def coerce_conditions(value: Any) -> list[str]:
    """Coerce a loosely-typed value to a deduplicated list of strings."""
    if not isinstance(value, list):
        return []
    seen: list[str] = []
    for item in value:
        if isinstance(item, str) and item.strip() and item.strip() not in seen:
            seen.append(item.strip())
    return seen
