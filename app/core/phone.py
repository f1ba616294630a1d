"""Phone number helpers for Spanish clinic contacts."""

import re

_NON_DIALABLE = re.compile(r"[^\d+]")


def normalize_phone_number(phone: str | None) -> str:
    """
    Reduce a phone number to its national digits.

    Separators are removed, the Spanish country code (``+34``, ``0034`` or a
    bare ``34`` on numbers longer than eleven digits) is dropped, and leading
    zeros are stripped.

    >>> normalize_phone_number("+34 612-345-678")
    '612345678'
    """
    if not phone:
        return ""

    cleaned = _NON_DIALABLE.sub("", phone)

    if cleaned.startswith("+34"):
        cleaned = cleaned[3:]
    elif cleaned.startswith("0034"):
        cleaned = cleaned[4:]
    elif cleaned.startswith("34") and len(cleaned) > 11:
        cleaned = cleaned[2:]

    cleaned = cleaned.replace("+", "")
    return cleaned.lstrip("0")


def is_valid_phone_number(phone: str | None) -> bool:
    """A normalized number must have between 9 and 15 digits."""
    normalized = normalize_phone_number(phone)
    return normalized.isdigit() and 9 <= len(normalized) <= 15


def phone_numbers_equal(first: str | None, second: str | None) -> bool:
    """Compare two numbers after normalization; fragments under nine digits never match."""
    a = normalize_phone_number(first)
    return len(a) >= 9 and a == normalize_phone_number(second)


def format_phone_number(phone: str | None) -> str:
    """Group a nine-digit national number as ``612 345 678``; anything else is returned as given."""
    normalized = normalize_phone_number(phone)
    if len(normalized) == 9:
        return f"{normalized[:3]} {normalized[3:6]} {normalized[6:]}"
    return phone or ""


def phone_search_variations(phone: str | None) -> list[str]:
    """Stored spellings a search for ``phone`` should match."""
    normalized = normalize_phone_number(phone)
    if not normalized:
        return []

    variations = [
        normalized,
        f"+34{normalized}",
        f"34{normalized}",
        f"0034{normalized}",
    ]
    if len(normalized) == 9:
        variations.append(format_phone_number(normalized))
    return list(dict.fromkeys(variations))


def format_phone_for_whatsapp(phone: str | None) -> str:
    """Digits-only international number as the messaging API expects it."""
    normalized = normalize_phone_number(phone)
    if len(normalized) == 9:
        return f"34{normalized}"
    return normalized
