"""Conversion between digit strings and their spoken-word renderings.

Speech-to-text often returns numbers as words ("zero four one two",
"double four") and text-to-speech must never read a long digit string as
one number. These helpers go both ways.
"""

import re

DIGIT_WORDS: dict[str, str] = {
    "0": "zero",
    "1": "one",
    "2": "two",
    "3": "three",
    "4": "four",
    "5": "five",
    "6": "six",
    "7": "seven",
    "8": "eight",
    "9": "nine",
}

WORD_DIGITS: dict[str, str] = {
    **{word: digit for digit, word in DIGIT_WORDS.items()},
    "oh": "0",
    "nought": "0",
}

REPEAT_WORDS: dict[str, int] = {"double": 2, "triple": 3}

_DIGIT_WORD = "|".join(sorted(WORD_DIGITS, key=len, reverse=True))
_REPEAT_WORD = "|".join(REPEAT_WORDS)
_SPOKEN_DIGIT = rf"(?:(?:{_REPEAT_WORD})\s+)?(?:{_DIGIT_WORD}|[0-9])"
_SPOKEN_RUN_RE = re.compile(
    rf"\b{_SPOKEN_DIGIT}\b(?:[\s,-]+{_SPOKEN_DIGIT}\b)*",
    re.IGNORECASE,
)


def digits_to_words(digits: str) -> str:
    """Render each digit as a word, space separated. Non-digits are dropped."""
    return " ".join(DIGIT_WORDS[ch] for ch in digits if ch in DIGIT_WORDS)


def format_spoken_groups(digits: str, groups: tuple[int, ...]) -> str:
    """Render digits as words in groups separated by commas.

    Example:
        >>> format_spoken_groups("0412345678", (4, 3, 3))
        'zero four one two, three four five, six seven eight'
    """
    chunks: list[str] = []
    position = 0
    for size in groups:
        chunk = digits[position:position + size]
        if chunk:
            chunks.append(chunk)
        position += size
    if position < len(digits):
        chunks.append(digits[position:])
    return ", ".join(digits_to_words(chunk) for chunk in chunks)


def spoken_to_digits(text: str) -> str:
    """Pull the digit sequence back out of a spoken rendering.

    Digit words, literal digits and "double"/"triple" repeats are honoured;
    any other word is ignored.
    """
    digits: list[str] = []
    repeat = 1
    for token in re.findall(r"[a-z]+|[0-9]", text.lower()):
        if token in REPEAT_WORDS:
            repeat = REPEAT_WORDS[token]
            continue
        digit = token if token.isdigit() else WORD_DIGITS.get(token)
        if digit is None:
            repeat = 1
            continue
        digits.append(digit * repeat)
        repeat = 1
    return "".join(digits)


def replace_digit_words(text: str) -> str:
    """Collapse runs of spoken digits inside free text into digit strings.

    "my number is zero four one two three" becomes "my number is 04123".
    Runs that contain no digit word are left untouched.
    """
    def _collapse(match: re.Match[str]) -> str:
        run = match.group(0)
        if run.replace(" ", "").replace(",", "").replace("-", "").isdigit():
            return run
        return spoken_to_digits(run)

    return _SPOKEN_RUN_RE.sub(_collapse, text)
