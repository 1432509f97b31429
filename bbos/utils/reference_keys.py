"""
Key generation for reference data entries
"""
import re
from typing import List

KEY_MAX_LENGTH = 50

_NON_KEY_CHARS = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_BULK_SEPARATORS = re.compile(r"[,\n]")


def generate_key(value: str, max_length: int = KEY_MAX_LENGTH) -> str:
    """
    Derive an entry key from its display value

    Lowercases, drops everything except ASCII letters, digits and whitespace,
    turns each whitespace run into a single underscore and truncates.

    >>> generate_key("New York")
    'new_york'
    """
    key = _NON_KEY_CHARS.sub("", value.lower())
    key = _WHITESPACE.sub("_", key)
    return key[:max_length]


def split_bulk_text(raw_text: str) -> List[str]:
    """Split pasted bulk text on commas or newlines, trimming and dropping empties"""
    if not raw_text:
        return []
    return [part.strip() for part in _BULK_SEPARATORS.split(raw_text) if part.strip()]
