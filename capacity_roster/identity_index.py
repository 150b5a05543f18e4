from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from .errors import CollisionDetected
from .models import CanonicalKey, EngineerRecord
from .normalization import normalize


class IdentityIndex:
    """Canonical key to engineer lookup built from one registry snapshot.

    When two distinct engineers normalize to the same key the first-seen one
    answers lookups and every colliding record is kept in ``collisions``.
    """

    def __init__(self) -> None:
        self._by_key: Dict[CanonicalKey, EngineerRecord] = {}
        self._by_slug: Dict[str, EngineerRecord] = {}
        self._collisions: Dict[CanonicalKey, List[EngineerRecord]] = {}

    @classmethod
    def build(cls, records: Iterable[EngineerRecord]) -> "IdentityIndex":
        index = cls()
        for record in records:
            index.insert(record)
        return index

    def insert(self, record: EngineerRecord) -> CanonicalKey:
        key = normalize(record.display_name)
        self._by_slug.setdefault(record.slug, record)
        existing = self._by_key.get(key)
        if existing is None:
            self._by_key[key] = record
        elif existing.id != record.id:
            colliding = self._collisions.setdefault(key, [existing])
            if all(item.id != record.id for item in colliding):
                colliding.append(record)
        return key

    def lookup_by_key(self, key: CanonicalKey) -> Optional[EngineerRecord]:
        return self._by_key.get(key)

    def lookup_by_slug(self, slug: str) -> Optional[EngineerRecord]:
        return self._by_slug.get(slug)

    def colliding_records(self, key: CanonicalKey) -> List[EngineerRecord]:
        return list(self._collisions.get(key, ()))

    @property
    def collisions(self) -> Dict[CanonicalKey, List[EngineerRecord]]:
        return {key: list(records) for key, records in self._collisions.items()}

    def collision_errors(self) -> List[CollisionDetected]:
        return [CollisionDetected(key, records) for key, records in self._collisions.items()]

    @property
    def slugs(self) -> Set[str]:
        return set(self._by_slug)
