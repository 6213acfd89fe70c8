"""
Postcode extraction and normalization.

Postcodes are fixed-width digit codes (4 digits in AU, e.g. 3000) read
back digit by digit ("three zero zero zero") rather than as a number.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from callflow.config import settings
from callflow.normalizers.spoken import digits_to_words, replace_digit_words

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostcodeRuleset:
    """Width and numeric range of one country's postcodes."""

    locale: str
    length: int
    minimum: int
    maximum: int

    def in_range(self, digits: str) -> bool:
        return len(digits) == self.length and self.minimum <= int(digits) <= self.maximum


AU_POSTCODE = PostcodeRuleset(locale="AU", length=4, minimum=1000, maximum=9999)
US_POSTCODE = PostcodeRuleset(locale="US", length=5, minimum=501, maximum=99950)

POSTCODE_RULESETS: dict[str, PostcodeRuleset] = {
    AU_POSTCODE.locale: AU_POSTCODE,
    US_POSTCODE.locale: US_POSTCODE,
}


def get_postcode_ruleset(locale: Optional[str] = None) -> PostcodeRuleset:
    """Look up the postcode format for a locale code.

    Raises:
        ValueError: If no ruleset is registered for the locale.
    """
    code = (locale or settings.locale.default_locale).upper()
    if code not in POSTCODE_RULESETS:
        raise ValueError(
            f"No postcode ruleset for locale '{code}'. Available: {sorted(POSTCODE_RULESETS)}"
        )
    return POSTCODE_RULESETS[code]


@dataclass(frozen=True)
class NormalizedPostcode:
    """A postcode in canonical and speakable form."""

    raw_postcode: str
    spoken_postcode: str
    is_valid: bool


def normalize_postcode(
    postcode_input: str, ruleset: Optional[PostcodeRuleset] = None
) -> NormalizedPostcode:
    """Normalize and validate a postcode. Invalid input is echoed, never raised."""
    if not postcode_input or not isinstance(postcode_input, str):
        return NormalizedPostcode(raw_postcode="", spoken_postcode="", is_valid=False)

    ruleset = ruleset or get_postcode_ruleset()
    digits = re.sub(r"[^0-9]", "", replace_digit_words(postcode_input))

    if not digits or not ruleset.in_range(digits):
        logger.debug("Postcode '%s' failed %s validation", digits, ruleset.locale)
        return NormalizedPostcode(raw_postcode=digits, spoken_postcode=digits, is_valid=False)

    return NormalizedPostcode(
        raw_postcode=digits,
        spoken_postcode=digits_to_words(digits),
        is_valid=True,
    )


def get_postcode_readback_format(
    postcode_input: str, ruleset: Optional[PostcodeRuleset] = None
) -> str:
    """Spoken form for confirmation readback, or the input as given if invalid."""
    normalized = normalize_postcode(postcode_input, ruleset)
    return normalized.spoken_postcode if normalized.is_valid else postcode_input


def extract_postcode_from_text(
    text: str, ruleset: Optional[PostcodeRuleset] = None
) -> Optional[str]:
    """Return the first standalone, in-range postcode in a transcript."""
    if not text:
        return None

    ruleset = ruleset or get_postcode_ruleset()
    pattern = re.compile(rf"(?<![0-9])([0-9]{{{ruleset.length}}})(?![0-9])")
    for match in pattern.finditer(replace_digit_words(text)):
        if ruleset.in_range(match.group(1)):
            return match.group(1)
    return None
