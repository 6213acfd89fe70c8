"""
Rule-based field extraction from caller utterances.

Each declared field is extracted independently by its data type, so one
utterance ("I'm John, john@example.com, 0412 345 678") can fill several
fields at once. Free text is only captured next to a configured hint
phrase; an unstructured utterance is never copied wholesale into a field.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from callflow.normalizers.phone import (
    PhoneRuleset,
    extract_phone_from_text,
    get_phone_ruleset,
    normalize_phone,
)
from callflow.normalizers.postcode import (
    PostcodeRuleset,
    extract_postcode_from_text,
    get_postcode_ruleset,
    normalize_postcode,
)
from callflow.schemas.agent_schema import FieldDataType, FieldSchema

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
NUMBER_RE = re.compile(r"[0-9]+")
HINT_VALUE_RE = re.compile(r"[^\s,.!?;:]+")

POSTCODE_FIELD_MARKERS = ("postcode", "postalcode", "zipcode")

# Skipped when they sit between a hint and its value ("name is John").
LINKING_WORDS = frozenset({"is", "was", "are", "it's", "its", "be", "=", "-"})


@dataclass(frozen=True)
class ExtractedValue:
    """A value pulled from an utterance.

    ``value`` is what downstream consumers read. For phone numbers and
    postcodes that is the spoken rendering, with canonical digits kept in
    ``raw_value``.
    """

    value: Any
    raw_value: Any = None
    spoken_value: Optional[str] = None


def is_postcode_field(field_name: str) -> bool:
    compact = re.sub(r"[^a-z]", "", field_name.lower())
    return any(marker in compact for marker in POSTCODE_FIELD_MARKERS)


def _extract_email(utterance: str) -> Optional[ExtractedValue]:
    match = EMAIL_RE.search(utterance)
    return ExtractedValue(value=match.group(0)) if match else None


def _extract_phone(utterance: str, ruleset: PhoneRuleset) -> Optional[ExtractedValue]:
    candidate = extract_phone_from_text(utterance, ruleset)
    if candidate is None:
        return None
    normalized = normalize_phone(candidate, ruleset)
    if not normalized.is_valid:
        logger.debug("Discarding invalid phone candidate '%s'", candidate)
        return None
    return ExtractedValue(
        value=normalized.spoken_phone_number,
        raw_value=normalized.raw_phone_number,
        spoken_value=normalized.spoken_phone_number,
    )


def _extract_postcode(utterance: str, ruleset: PostcodeRuleset) -> Optional[ExtractedValue]:
    candidate = extract_postcode_from_text(utterance, ruleset)
    if candidate is None:
        return None
    normalized = normalize_postcode(candidate, ruleset)
    if not normalized.is_valid:
        return None
    return ExtractedValue(
        value=normalized.spoken_postcode,
        raw_value=normalized.raw_postcode,
        spoken_value=normalized.spoken_postcode,
    )


def _extract_number(utterance: str) -> Optional[ExtractedValue]:
    match = NUMBER_RE.search(utterance)
    return ExtractedValue(value=int(match.group(0))) if match else None


def _extract_choice(utterance: str, options: Iterable[str]) -> Optional[ExtractedValue]:
    lower = utterance.lower()
    for option in options:
        if option and option.lower() in lower:
            return ExtractedValue(value=option)
    return None


def _extract_from_hints(utterance: str, hints: Iterable[str]) -> Optional[ExtractedValue]:
    """Take the token right after the first hint phrase found, longest hints first."""
    lower = utterance.lower()
    for hint in sorted((h for h in hints if h.strip()), key=len, reverse=True):
        index = lower.find(hint.lower())
        if index < 0:
            continue
        after = utterance[index + len(hint):]
        tokens = HINT_VALUE_RE.findall(after)
        while tokens and tokens[0].lower() in LINKING_WORDS:
            tokens.pop(0)
        if tokens:
            return ExtractedValue(value=tokens[0])
    return None


def extract_field(
    utterance: str,
    schema: FieldSchema,
    phone_ruleset: PhoneRuleset,
    postcode_ruleset: PostcodeRuleset,
) -> Optional[ExtractedValue]:
    """Extract a single field's value by its data type, or None."""
    data_type = schema.data_type

    if data_type == FieldDataType.EMAIL:
        return _extract_email(utterance)
    if data_type == FieldDataType.PHONE:
        return _extract_phone(utterance, phone_ruleset)
    if data_type == FieldDataType.NUMBER:
        return _extract_number(utterance)
    if data_type == FieldDataType.CHOICE:
        return _extract_choice(utterance, schema.choice_options)
    if data_type == FieldDataType.TEXT and is_postcode_field(schema.field_name):
        return _extract_postcode(utterance, postcode_ruleset)
    # text, date and boolean fields rely on configured hint phrases
    return _extract_from_hints(utterance, schema.nlp_extraction_hints)


def extract_fields(
    utterance: str,
    field_schemas: Iterable[FieldSchema],
    locale: Optional[str] = None,
    skip: Iterable[str] = (),
) -> dict[str, ExtractedValue]:
    """Extract every declared field found in the utterance.

    Fields named in ``skip`` are not attempted. Returns field name to
    extracted value for the fields that matched.
    """
    if not utterance or not utterance.strip():
        return {}

    phone_ruleset = get_phone_ruleset(locale)
    postcode_ruleset = get_postcode_ruleset(locale)
    skipped = set(skip)

    extracted: dict[str, ExtractedValue] = {}
    for schema in field_schemas:
        if schema.field_name in skipped or schema.field_name in extracted:
            continue
        value = extract_field(utterance, schema, phone_ruleset, postcode_ruleset)
        if value is not None:
            extracted[schema.field_name] = value
    return extracted
