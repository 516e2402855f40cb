"""Clinical field extraction module."""

from .types import PatientFields, coerce_int, coerce_float, coerce_conditions
from .extractor import (
    FieldExtractor,
    extract_fields_regex,
    get_field_extractor,
    extract_fields,
)

__all__ = [
    # Types
    "PatientFields",
    "coerce_int",
    "coerce_float",
    "coerce_conditions",
    # Extractor
    "FieldExtractor",
    "extract_fields_regex",
    "get_field_extractor",
    "extract_fields",
]
