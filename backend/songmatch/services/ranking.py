from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional, Set, TypeVar

from ..catalog.types import Track

T = TypeVar("T")


def rank(
    items: Iterable[T],
    *,
    limit: int,
    key: Optional[Callable[[T], Any]] = None,
    descending: bool = False,
) -> List[T]:
    """Order ``items`` by ``key`` and keep the first ``limit``.

    Python's sort is stable in both directions, so items with equal keys keep
    their input order.
    """
    ordered = list(items) if key is None else sorted(items, key=key, reverse=descending)
    return ordered[: max(limit, 0)]


def unique_by_id(tracks: Iterable[Track], *, exclude: Optional[Set[str]] = None) -> List[Track]:
    seen: Set[str] = set(exclude or ())
    unique: List[Track] = []
    for track in tracks:
        if track.track_id in seen:
            continue
        seen.add(track.track_id)
        unique.append(track)
    return unique
