import re
import uuid
from typing import Any

_REFERENCE_RE = re.compile(r"[0-9a-f]{32}")


def new_reference() -> str:
    return uuid.uuid4().hex


def is_valid_reference(value: Any) -> bool:
    """True if `value` has the store's identifier format (32 lowercase hex chars)."""
    return isinstance(value, str) and _REFERENCE_RE.fullmatch(value) is not None
