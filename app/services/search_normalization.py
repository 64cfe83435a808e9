from __future__ import annotations

import re
import unicodedata

_MULTISPACE_RE = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def collapse_text(value: str | None) -> str:
    """Lowercase and collapse whitespace; diacritics are kept."""
    if not value:
        return ""
    return _MULTISPACE_RE.sub(" ", value.strip().lower())


def fold_text(value: str | None) -> str:
    """Lowercase, strip diacritics and collapse whitespace."""
    return strip_accents(collapse_text(value))


def query_tokens(value: str | None) -> list[str]:
    """Whitespace tokens for SQL ``ILIKE`` matching.

    Columns are compared as stored, so tokens keep their diacritics;
    ``fold_text`` is only for in-memory scoring.
    """
    collapsed = collapse_text(value)
    if not collapsed:
        return []
    return collapsed.split(" ")


def search_terms(value: str | None, *, min_length: int = 2) -> list[str]:
    """Distinct tokens longer than ``min_length``, in first-seen order."""
    terms: list[str] = []
    for token in query_tokens(value):
        if len(token) > min_length and token not in terms:
            terms.append(token)
    return terms
