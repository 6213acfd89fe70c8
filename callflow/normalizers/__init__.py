from callflow.normalizers.phone import (
    NormalizedPhone,
    PhoneRuleset,
    extract_phone_from_text,
    get_phone_readback_format,
    get_phone_ruleset,
    normalize_phone,
)
from callflow.normalizers.postcode import (
    NormalizedPostcode,
    PostcodeRuleset,
    extract_postcode_from_text,
    get_postcode_readback_format,
    get_postcode_ruleset,
    normalize_postcode,
)
from callflow.normalizers.spoken import digits_to_words, spoken_to_digits

__all__ = [
    "NormalizedPhone",
    "PhoneRuleset",
    "extract_phone_from_text",
    "get_phone_readback_format",
    "get_phone_ruleset",
    "normalize_phone",
    "NormalizedPostcode",
    "PostcodeRuleset",
    "extract_postcode_from_text",
    "get_postcode_readback_format",
    "get_postcode_ruleset",
    "normalize_postcode",
    "digits_to_words",
    "spoken_to_digits",
]
