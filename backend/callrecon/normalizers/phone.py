"""Caller-id canonicalization to E.164 — pure, no lookup tables or network calls."""

import re

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str | None) -> str | None:
    """Canonicalize a raw caller id to E.164.

    Both ledgers go through this function so that string equality of the result
    is the only caller-identity test the matcher needs.

    Rules, in order:
    - empty input -> None
    - no digits at all (e.g. "Anonymous") -> None
    - input already starting with "+" -> returned unchanged
    - 11 digits starting with 1 -> "+" prefix
    - 10 digits -> "+1" prefix
    - any other digit string -> "+" prefix
    """
    if not raw:
        return None

    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        return None

    if raw.startswith("+"):
        return raw

    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"

    if len(digits) == 10:
        return f"+1{digits}"

    return f"+{digits}"
