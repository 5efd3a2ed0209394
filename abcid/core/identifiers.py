import re

# optional two-letter institution tag followed by the numeric UID
_TAGGED_UID = re.compile(r"^([A-Za-z]{2})?(\d+)$")

UID_LENGTH = 10


def strip_uid_prefix(value: str) -> str:
    """'ST0123456789' -> '0123456789'. Anything else is returned trimmed, unchanged."""
    value = value.strip()
    m = _TAGGED_UID.match(value)
    return m.group(2) if m else value


def normalize_uid(value: str) -> str:
    """Digits only, left-padded to the canonical 10 characters."""
    digits = re.sub(r"\D", "", value)
    return digits.zfill(UID_LENGTH) if digits else ""


def is_tagged_uid(value: str) -> bool:
    return bool(_TAGGED_UID.match(value.strip()))


def looks_like_email(value: str) -> bool:
    return "@" in value
