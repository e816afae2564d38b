"""
Item identifiers.

Items are keyed by GUIDs written in braced upper-case form. Field values
store them in that form, rich text stores the 32-hex "short" form.
"""

import re
import uuid

_SHORT_ID = re.compile(r"^[0-9A-Fa-f]{32}$")


def parse_id(value: str) -> uuid.UUID | None:
    """Parse any GUID spelling, returning None for non-IDs."""
    if not value:
        return None
    text = value.strip()
    if text.startswith("{") and text.endswith("}"):
        text = text[1:-1]
    try:
        return uuid.UUID(text)
    except ValueError:
        return None


def is_id(value: str | None) -> bool:
    return value is not None and parse_id(value) is not None


def normalize_id(value: str) -> str:
    """
    Normalize an ID to ``{XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX}``.

    Raises:
        ValueError: if the value is not a GUID
    """
    parsed = parse_id(value)
    if parsed is None:
        raise ValueError(f"Not a valid item ID: {value!r}")
    return "{" + str(parsed).upper() + "}"


def short_id(value: str) -> str:
    """Return the 32-hex upper-case form of an ID."""
    parsed = parse_id(value)
    if parsed is None:
        raise ValueError(f"Not a valid item ID: {value!r}")
    return parsed.hex.upper()


def is_short_id(value: str) -> bool:
    return bool(_SHORT_ID.match(value))


def same_id(left: str | None, right: str | None) -> bool:
    """Compare two IDs regardless of spelling."""
    if left is None or right is None:
        return False
    a, b = parse_id(left), parse_id(right)
    return a is not None and a == b


def new_id() -> str:
    return "{" + str(uuid.uuid4()).upper() + "}"
