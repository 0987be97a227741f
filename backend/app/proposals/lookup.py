"""Fuzzy title matching used when the model names things instead of giving ids."""

import re
import unicodedata
from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_lookup_text(value: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace.

    >>> normalize_lookup_text("  Análisi   di Mercato! ")
    'analisi di mercato'
    """
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub(" ", stripped.lower()).strip()


def match_by_title(
    candidates: Iterable[T], title: str | None, title_of: Callable[[T], str]
) -> T | None:
    """Exact normalized match first, else a single unambiguous partial match."""
    if not title:
        return None
    needle = normalize_lookup_text(title)
    if not needle:
        return None

    normalized = [(c, normalize_lookup_text(title_of(c))) for c in candidates]
    for candidate, hay in normalized:
        if hay == needle:
            return candidate

    partial = [c for c, hay in normalized if hay and (needle in hay or hay in needle)]
    return partial[0] if len(partial) == 1 else None
