from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from .identity_index import IdentityIndex
from .resolver import Matched, resolve


@dataclass
class ViewResolution:
    """Engineer ids behind a user-curated view of engineer names."""

    engineer_ids: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    collisions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "engineer_ids": list(self.engineer_ids),
            "unresolved": list(self.unresolved),
            "collisions": list(self.collisions),
        }


def resolve_view(
    names: Iterable[str],
    index: IdentityIndex,
    aliases: Optional[Mapping[str, str]] = None,
) -> ViewResolution:
    result = ViewResolution()
    for name in names:
        resolution = resolve(name, index, aliases)
        if not isinstance(resolution, Matched):
            result.unresolved.append(name)
            continue
        if resolution.collision:
            result.collisions.append(name)
        if resolution.record.id not in result.engineer_ids:
            result.engineer_ids.append(resolution.record.id)
    return result
