from __future__ import annotations

import re
import unicodedata
from typing import Collection, Dict, Optional

from .models import CanonicalKey

ZERO_WIDTH_CHARS = ("\u200b", "\u200c", "\u200d", "\u2060", "\ufeff")
NON_BREAKING_SPACES = ("\u00a0", "\u202f", "\u2007")

# Letters whose decomposition is missing or semantically wrong. Only ß and ñ
# are mapped; ø, đ and ł deliberately pass through unchanged. Extend this
# table explicitly, never through a generic transliteration step.
SUBSTITUTIONS: Dict[str, str] = {
    "ß": "ss",
    "\u1e9e": "ss",
    "ñ": "n",
    "Ñ": "n",
}

_ZERO_WIDTH_RE = re.compile("[" + "".join(ZERO_WIDTH_CHARS) + "]")
_NBSP_RE = re.compile("[" + "".join(NON_BREAKING_SPACES) + "]")
_WHITESPACE_RE = re.compile(r"\s+")
_SLUG_INVALID_RE = re.compile(r"[^a-z0-9]+")

DEFAULT_SLUG = "engineer"


def strip_marks(value: str) -> str:
    return "".join(
        ch for ch in unicodedata.normalize("NFD", value) if unicodedata.category(ch) != "Mn"
    )


def normalize(raw_name: Optional[str]) -> CanonicalKey:
    """Reduce a display name to the key used for identity comparison.

    Steps run in a fixed order: zero-width characters are removed, non-breaking
    spaces become spaces, the value is trimmed, diacritics are stripped after
    NFD decomposition, the substitution table is applied, whitespace runs are
    collapsed and the result is case folded. Case folding can itself emit
    combining marks (``"\u0130"`` folds to ``"i"`` plus a dot above), so those are
    stripped once more to keep the function idempotent.
    """
    if not raw_name:
        return ""
    value = _ZERO_WIDTH_RE.sub("", str(raw_name))
    value = _NBSP_RE.sub(" ", value)
    value = value.strip()
    value = strip_marks(value)
    value = "".join(SUBSTITUTIONS.get(ch, ch) for ch in value)
    # removing marks can leave whitespace at the edges
    value = _WHITESPACE_RE.sub(" ", value).strip()
    value = value.casefold()
    return strip_marks(value)


def slugify(raw_name: Optional[str]) -> str:
    slug = _SLUG_INVALID_RE.sub("-", normalize(raw_name)).strip("-")
    return slug or DEFAULT_SLUG


def unique_slug(raw_name: Optional[str], taken: Collection[str]) -> str:
    """Slug for ``raw_name`` with a numeric suffix appended until it is free."""
    base = slugify(raw_name)
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"
