"""
Clinical field extraction from free text.

Patients describe themselves however they like ("tengo 38, peso 112 kg y
mido 1.68"). A deterministic regex pass always runs; when the LLM backend
is enabled its answer is used first and the regex result fills any gaps.
"""

import logging
import re
import time
from typing import Optional

from app.config import settings
from app.infra.claude import ClaudeClient, ClaudeClientError, get_claude_client, parse_json_object
from .types import PatientFields, coerce_conditions, coerce_float, coerce_int

logger = logging.getLogger(__name__)


# Condition stems, matched as substrings; output keeps this order
CONDITION_STEMS = [
    "diabetes", "hipertensi", "hipotiroid", "tiroid", "apnea",
    "hígado graso", "higado graso", "reflujo", "gastritis", "colitis",
    "asma", "dislipidemia", "artritis", "depresi", "ansiedad",
]

_DECIMAL_COMMA = re.compile(r"(\d),(\d)")

_AGE_YEARS = re.compile(r"(\d{1,2})\s*a[nñ]os")
_AGE_EXPLICIT = re.compile(r"edad[:\s]*(\d{1,2})")
_AGE_BARE = re.compile(r"(?<![\d.])\b([1-9]\d)\b(?!\.\d)")

_WEIGHT_UNIT = re.compile(r"(\d{2,3}(?:\.\d)?)\s*(?:kg|kilos?)")
_WEIGHT_EXPLICIT = re.compile(r"peso[:\s]*(\d{2,3}(?:\.\d)?)")

_HEIGHT_CM = re.compile(r"([12]\d{2})\s*cm")
_HEIGHT_M = re.compile(r"([0-2]\.\d{1,2})\s*m(?:ts?|etros?)?\b")
_HEIGHT_EXPLICIT = re.compile(r"estatura[:\s]*([12]\d{2})")
_HEIGHT_MIDO_M = re.compile(r"mido\s*([12]\.\d{1,2})")
_HEIGHT_MIDO_CM = re.compile(r"mido\s*([12]\d{2})\b")

# Numbers attributed through a unit or label are not "bare"
_TAGGED = [
    _AGE_YEARS, _AGE_EXPLICIT, _WEIGHT_UNIT, _WEIGHT_EXPLICIT,
    _HEIGHT_CM, _HEIGHT_M, _HEIGHT_EXPLICIT, _HEIGHT_MIDO_M, _HEIGHT_MIDO_CM,
]
_BARE_NUMBER = re.compile(r"(?<![\d.])(\d{2,3}(?:\.\d)?)(?![\d.]?\d)")

HUMAN_HEIGHT_CM = (130, 220)


def normalize_text(text: str) -> str:
    """Lower-case and turn decimal commas into dots."""
    return _DECIMAL_COMMA.sub(r"\1.\2", (text or "").lower())


def _mask_tagged(text: str) -> str:
    """Blank out numbers attributed through a unit or label, keeping offsets."""
    for pattern in _TAGGED:
        text = pattern.sub(lambda m: " " * len(m.group(0)), text)
    return text


def _extract_height(text: str, bare: list[float]) -> Optional[int]:
    """Height in cm from tagged values, else the second bare number."""
    match = _HEIGHT_CM.search(text)
    if match:
        return int(match.group(1))

    for pattern, to_cm in (
        (_HEIGHT_M, 100),
        (_HEIGHT_EXPLICIT, 1),
        (_HEIGHT_MIDO_M, 100),
        (_HEIGHT_MIDO_CM, 1),
    ):
        match = pattern.search(text)
        if match:
            return round(float(match.group(1)) * to_cm)

    if len(bare) >= 2:
        maybe = round(bare[1])
        if HUMAN_HEIGHT_CM[0] <= maybe <= HUMAN_HEIGHT_CM[1]:
            return maybe
    return None


def extract_fields_regex(text: str) -> PatientFields:
    """Extract age, weight, height and conditions with regular expressions.

    Never raises. Fields that cannot be found are None. A bare number
    already used as the age is not reused as weight or height.
    """
    t = normalize_text(text)
    masked = _mask_tagged(t)

    age: Optional[int] = None
    age_position: Optional[int] = None
    match = _AGE_YEARS.search(t) or _AGE_EXPLICIT.search(t) or _AGE_BARE.search(masked)
    if match:
        age = int(match.group(1)) or None
        age_position = match.start(1)

    bare = [
        float(m.group(1))
        for m in _BARE_NUMBER.finditer(masked)
        if m.start(1) != age_position
    ]

    weight: Optional[float] = None
    match = _WEIGHT_UNIT.search(t) or _WEIGHT_EXPLICIT.search(t)
    if match:
        weight = float(match.group(1))
    elif len(bare) >= 2:
        weight = bare[0]

    height = _extract_height(t, bare)

    conditions = [stem for stem in CONDITION_STEMS if stem in t]

    return PatientFields(
        age=age,
        weight_kg=weight,
        height_cm=height or None,
        conditions=conditions,
        source="regex",
    )


EXTRACTION_SYSTEM_PROMPT = """Eres un extractor de datos clínicos para triage bariátrico en español.
Devuelve SOLO JSON con las claves: age (entero en años o null), weight_kg (número o null), height_cm (número entero en cm o null), conditions (array de strings, puede ser []).
Acepta texto libre con medidas en "m" o "cm" y peso con o sin "kg"."""


class FieldExtractor:
    """Regex extraction, optionally layered under Claude."""

    def __init__(self, claude_client: Optional[ClaudeClient] = None, use_llm: Optional[bool] = None):
        """Initialize extractor.

        Args:
            claude_client: Optional Claude client (for testing)
            use_llm: Force the LLM layer on/off (defaults to settings)
        """
        self._client = claude_client
        self._use_llm = use_llm if use_llm is not None else claude_client is not None

    async def _get_client(self) -> Optional[ClaudeClient]:
        """Get Claude client, or None when the LLM is disabled."""
        if self._client is None:
            self._client = await get_claude_client()
        return self._client

    async def extract(self, text: str) -> PatientFields:
        """
        Extract clinical fields from a free-text message.

        Args:
            text: Patient's message

        Returns:
            PatientFields; never raises
        """
        fallback = extract_fields_regex(text)
        if not self._use_llm or not (text or "").strip():
            return fallback

        start_time = time.time()
        try:
            client = await self._get_client()
            if client is None:
                return fallback

            response = await client.generate(
                prompt=f'Extrae del siguiente texto:\n"""{text}"""',
                system_prompt=EXTRACTION_SYSTEM_PROMPT,
                max_tokens=200,
                temperature=0,
            )
            data = parse_json_object(response.content)

            from_llm = PatientFields(
                age=coerce_int(data.get("age")),
                weight_kg=coerce_float(data.get("weight_kg")),
                height_cm=coerce_int(data.get("height_cm")),
                conditions=coerce_conditions(data.get("conditions", data.get("diseases"))),
                source="llm+regex",
            )
            result = from_llm.fill_from(fallback)

            logger.debug(
                f"Extracted fields in {(time.time() - start_time) * 1000:.0f}ms: "
                f"age={result.age}, weight={result.weight_kg}, height={result.height_cm}"
            )
            return result

        except (ClaudeClientError, ValueError) as e:
            logger.warning(f"LLM extraction failed, using regex only: {e}")
            fallback.source = "regex-fallback"
            return fallback


# Singleton
_extractor: Optional[FieldExtractor] = None


def get_field_extractor() -> FieldExtractor:
    """Get singleton FieldExtractor."""
    global _extractor
    if _extractor is None:
        _extractor = FieldExtractor(use_llm=settings.llm_enabled)
    return _extractor


async def extract_fields(text: str) -> PatientFields:
    """Convenience function to extract clinical fields."""
    return await get_field_extractor().extract(text)
