"""
Phone number extraction and normalization for natural readback.

Numbers are:
- captured from transcripts in grouped, international or spelled-out form
- rewritten from international to national form and validated
- rendered as grouped digit words so TTS never reads them as one number

Usage:
    result = normalize_phone("+61 412 345 678")
    result.raw_phone_number     # '0412345678'
    result.spoken_phone_number  # 'zero four one two, three four five, six seven eight'
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from callflow.config import settings
from callflow.normalizers.spoken import format_spoken_groups, replace_digit_words

logger = logging.getLogger(__name__)

_CANDIDATE_RE = re.compile(r"\+?[0-9][0-9\s().-]*[0-9]")
_SEPARATOR_RE = re.compile(r"[\s().-]+")
# Stop widening a candidate once it is this far past the national length.
_MAX_EXTRA_DIGITS = 4


@dataclass(frozen=True)
class PhoneRuleset:
    """Numbering plan for one country."""

    locale: str
    country_code: str
    trunk_prefix: str
    national_length: int
    leading_pattern: str
    valid_pattern: str
    mobile_pattern: Optional[str] = None
    mobile_groups: tuple[int, ...] = (4, 3, 3)
    landline_groups: tuple[int, ...] = (2, 4, 4)

    def is_plausible(self, national: str) -> bool:
        return len(national) == self.national_length and bool(
            re.match(self.leading_pattern, national)
        )


AU_PHONE = PhoneRuleset(
    locale="AU",
    country_code="61",
    trunk_prefix="0",
    national_length=10,
    leading_pattern=r"0[23478]",
    valid_pattern=r"0[23478][0-9]{8}",
    mobile_pattern=r"04[0-9]{8}",
    mobile_groups=(4, 3, 3),
    landline_groups=(2, 4, 4),
)

US_PHONE = PhoneRuleset(
    locale="US",
    country_code="1",
    trunk_prefix="",
    national_length=10,
    leading_pattern=r"[2-9]",
    valid_pattern=r"[2-9][0-9]{2}[2-9][0-9]{6}",
    mobile_groups=(3, 3, 4),
    landline_groups=(3, 3, 4),
)

PHONE_RULESETS: dict[str, PhoneRuleset] = {
    AU_PHONE.locale: AU_PHONE,
    US_PHONE.locale: US_PHONE,
}


def get_phone_ruleset(locale: Optional[str] = None) -> PhoneRuleset:
    """Look up the numbering plan for a locale code.

    Raises:
        ValueError: If no ruleset is registered for the locale.
    """
    code = (locale or settings.locale.default_locale).upper()
    if code not in PHONE_RULESETS:
        raise ValueError(
            f"No phone ruleset for locale '{code}'. Available: {sorted(PHONE_RULESETS)}"
        )
    return PHONE_RULESETS[code]


@dataclass(frozen=True)
class NormalizedPhone:
    """A phone number in canonical and speakable form."""

    raw_phone_number: str
    spoken_phone_number: str
    is_valid: bool
    is_mobile: bool = False


def _clean(value: str) -> str:
    """Strip everything except digits and a leading +."""
    value = value.strip()
    digits = re.sub(r"[^0-9]", "", value)
    return "+" + digits if value.startswith("+") else digits


def _to_national(cleaned: str, ruleset: PhoneRuleset) -> str:
    """Rewrite +CC, 00CC or bare CC international forms to national form."""
    code = ruleset.country_code
    rest: Optional[str] = None

    if cleaned.startswith("+"):
        body = cleaned[1:]
        rest = body[len(code):] if body.startswith(code) else body
    elif cleaned.startswith("00" + code):
        rest = cleaned[2 + len(code):]
    elif cleaned.startswith(code) and len(cleaned) == (
        len(code) + ruleset.national_length - len(ruleset.trunk_prefix)
    ):
        rest = cleaned[len(code):]

    if rest is None:
        return cleaned
    if ruleset.trunk_prefix and not rest.startswith(ruleset.trunk_prefix):
        return ruleset.trunk_prefix + rest
    return rest


def normalize_phone(phone_input: str, ruleset: Optional[PhoneRuleset] = None) -> NormalizedPhone:
    """Normalize and validate a phone number, rendering its spoken form.

    Invalid input never raises: the cleaned digits are echoed back as both
    raw and spoken values with ``is_valid=False``.
    """
    if not phone_input or not isinstance(phone_input, str):
        return NormalizedPhone(raw_phone_number="", spoken_phone_number="", is_valid=False)

    ruleset = ruleset or get_phone_ruleset()
    national = _to_national(_clean(replace_digit_words(phone_input)), ruleset).lstrip("+")

    if not re.fullmatch(ruleset.valid_pattern, national):
        logger.debug("Phone '%s' failed %s validation", national, ruleset.locale)
        return NormalizedPhone(
            raw_phone_number=national, spoken_phone_number=national, is_valid=False
        )

    is_mobile = bool(ruleset.mobile_pattern and re.fullmatch(ruleset.mobile_pattern, national))
    groups = ruleset.mobile_groups if is_mobile else ruleset.landline_groups
    return NormalizedPhone(
        raw_phone_number=national,
        spoken_phone_number=format_spoken_groups(national, groups),
        is_valid=True,
        is_mobile=is_mobile,
    )


def get_phone_readback_format(phone_input: str, ruleset: Optional[PhoneRuleset] = None) -> str:
    """Spoken form for confirmation readback, or the input as given if invalid."""
    normalized = normalize_phone(phone_input, ruleset)
    return normalized.spoken_phone_number if normalized.is_valid else phone_input


def extract_phone_from_text(text: str, ruleset: Optional[PhoneRuleset] = None) -> Optional[str]:
    """Find the first plausible phone number in a transcript.

    Handles grouped digits ("0412 345 678"), international prefixes
    ("+61 412 345 678") and spelled-out digits ("zero four one two ...").
    Returns national-form digits without validating them.
    """
    if not text:
        return None

    ruleset = ruleset or get_phone_ruleset()
    converted = replace_digit_words(text)

    for match in _CANDIDATE_RE.finditer(converted):
        national = _to_national(_clean(match.group(0)), ruleset).lstrip("+")
        if ruleset.is_plausible(national):
            return national

        # A run may glue a phone number to neighbouring numbers; try each
        # contiguous window of its digit groups.
        groups = [g for g in _SEPARATOR_RE.split(match.group(0)) if g]
        for start in range(len(groups)):
            window = ""
            for group in groups[start:]:
                window += group
                national = _to_national(_clean(window), ruleset).lstrip("+")
                if ruleset.is_plausible(national):
                    return national
                if len(national) > ruleset.national_length + _MAX_EXTRA_DIGITS:
                    break

    return None
