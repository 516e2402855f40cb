"""BMI triage helpers."""

from typing import Optional

from app.core.intelligence.extraction.types import PatientFields
from app.core.intelligence.session.models import PatientData

# BMI at or above which the patient is a surgical candidate
SURGICAL_BMI_THRESHOLD = 30.0

FIELD_LABELS = {
    "age": "edad",
    "weight_kg": "peso",
    "height_cm": "estatura",
}


def bmi(weight_kg: float, height_cm: float) -> Optional[float]:
    """Body-mass index rounded to one decimal, or None for a zero height."""
    if not height_cm:
        return None
    meters = height_cm / 100
    return round(weight_kg / (meters * meters), 1)


def merge_patient_data(previous: PatientData, new: PatientFields) -> PatientData:
    """Merge newly extracted fields into what the session already holds.

    The first non-null value wins. Conditions keep the previous list when it
    is non-empty, otherwise take the new one.
    """
    return PatientData(
        age=previous.age if previous.age is not None else new.age,
        weight_kg=previous.weight_kg if previous.weight_kg is not None else new.weight_kg,
        height_cm=previous.height_cm if previous.height_cm is not None else new.height_cm,
        conditions=list(previous.conditions) if previous.conditions else list(new.conditions),
        bmi=previous.bmi,
    )


def missing_fields(patient: PatientData) -> list[str]:
    """Spanish labels of the required fields still missing, in asking order."""
    return [label for attr, label in FIELD_LABELS.items() if getattr(patient, attr) is None]


def join_natural(items: list[str]) -> str:
    """Join as a Spanish list: ["edad", "peso"] -> "edad y peso"."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return f"{', '.join(items[:-1])} y {items[-1]}"
