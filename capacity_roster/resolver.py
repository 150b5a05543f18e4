"""
Authoritative engineer identity resolution.

``resolve`` matches on exact canonical-key equality only, then falls back to
the configured alias map (alias name -> engineer slug). Substring matching is
not injective on names ("Novák Jan" is contained in "Novák Jana"), so it is
only offered through ``search_engineers`` for interactive lookups and must not
feed migration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Tuple, Union

from .identity_index import IdentityIndex
from .models import CanonicalKey, EngineerRecord
from .normalization import normalize

MatchMethod = Literal["exact", "alias"]


@dataclass(frozen=True)
class Matched:
    record: EngineerRecord
    key: CanonicalKey
    method: MatchMethod = "exact"
    colliding: Tuple[EngineerRecord, ...] = field(default_factory=tuple)

    @property
    def collision(self) -> bool:
        return len(self.colliding) > 1


@dataclass(frozen=True)
class Unmatched:
    key: CanonicalKey


Resolution = Union[Matched, Unmatched]


def normalize_aliases(aliases: Optional[Mapping[str, str]]) -> Dict[CanonicalKey, str]:
    if not aliases:
        return {}
    return {normalize(alias): slug for alias, slug in aliases.items() if normalize(alias)}


def resolve(
    raw_name: str,
    index: IdentityIndex,
    aliases: Optional[Mapping[str, str]] = None,
) -> Resolution:
    key = normalize(raw_name)
    if not key:
        return Unmatched(key)
    record = index.lookup_by_key(key)
    if record is not None:
        return Matched(record, key, "exact", tuple(index.colliding_records(key)))
    slug = normalize_aliases(aliases).get(key)
    if slug:
        record = index.lookup_by_slug(slug)
        if record is not None:
            return Matched(record, key, "alias")
    return Unmatched(key)


def search_engineers(query: str, records: Iterable[EngineerRecord]) -> List[EngineerRecord]:
    """Non-authoritative "contains" search for interactive pickers.

    Exact key matches sort first, then matches on the slug or normalized name.
    """
    needle = normalize(query)
    if not needle:
        return []
    exact: List[EngineerRecord] = []
    partial: List[EngineerRecord] = []
    for record in records:
        key = normalize(record.display_name)
        if key == needle:
            exact.append(record)
        elif needle in key or needle.replace(" ", "-") in record.slug:
            partial.append(record)
    partial.sort(key=lambda item: normalize(item.display_name))
    return exact + partial
