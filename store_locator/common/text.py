"""Text normalisation for search matching and cache keys."""

from __future__ import annotations

import re
import unicodedata

_NON_ALNUM_RE = re.compile(r"[^0-9a-z]+")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_search_text(value: str | None) -> str:
    if not value:
        return ""
    cleaned = strip_diacritics(value).lower()
    cleaned = _NON_ALNUM_RE.sub(" ", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def tokenize(value: str | None) -> list[str]:
    normalized = normalize_search_text(value)
    if not normalized:
        return []
    return normalized.split(" ")


def normalize_address_key(address: str | None) -> str:
    # Trimmed only; case is kept.
    if address is None:
        return ""
    return address.strip()
