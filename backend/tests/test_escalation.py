from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from songmatch.services.escalation import ThresholdEscalator, first_sufficient
from songmatch.services.ranking import rank, unique_by_id
from stubs import make_track


class _RecordingQuery:
    def __init__(self, sizes: dict) -> None:
        self.sizes = sizes
        self.calls: List[tuple] = []

    async def __call__(self, threshold: float, count: int) -> List[int]:
        self.calls.append((threshold, count))
        return list(range(min(self.sizes.get(threshold, 0), count)))


def test_escalator_stops_at_first_sufficient_threshold():
    query = _RecordingQuery({0.15: 4, 0.20: 9})
    escalator = ThresholdEscalator((0.15, 0.20))

    results = asyncio.run(escalator.run(query, count=10, minimum=3))

    assert results == [0, 1, 2, 3]
    assert query.calls == [(0.15, 10)]


def test_escalator_loosens_until_enough():
    query = _RecordingQuery({0.15: 1, 0.20: 6})
    escalator = ThresholdEscalator((0.15, 0.20))

    results = asyncio.run(escalator.run(query, count=10, minimum=3))

    assert len(results) == 6
    assert [threshold for threshold, _ in query.calls] == [0.15, 0.20]


def test_escalator_returns_last_attempt_when_never_sufficient():
    query = _RecordingQuery({0.1: 0, 0.2: 1, 0.3: 2})
    escalator = ThresholdEscalator((0.1, 0.2, 0.3))

    results = asyncio.run(escalator.run(query, count=5, minimum=5))

    assert results == [0, 1]
    assert len(query.calls) == 3


@pytest.mark.parametrize("thresholds", [(), (0.2, 0.1), (0.2, 0.2)])
def test_escalator_rejects_bad_thresholds(thresholds):
    with pytest.raises(ValueError):
        ThresholdEscalator(thresholds)


def test_first_sufficient_relaxes_floor():
    values = [0.9, 0.7, 0.55, 0.3]
    tried: List[float] = []

    def above(floor: float) -> List[float]:
        tried.append(floor)
        return [value for value in values if value >= floor]

    assert first_sufficient((0.6, 0.5), above, 2) == [0.9, 0.7]
    assert tried == [0.6]
    assert first_sufficient((0.6, 0.5), above, 3) == [0.9, 0.7, 0.55]


def test_rank_is_stable_and_truncates():
    items = [("a", 2), ("b", 1), ("c", 2), ("d", 3)]
    assert rank(items, limit=3, key=lambda item: item[1], descending=True) == [("d", 3), ("a", 2), ("c", 2)]
    assert rank(items, limit=2) == [("a", 2), ("b", 1)]
    assert rank(items, limit=0) == []


def test_unique_by_id_keeps_first_and_skips_excluded():
    first = make_track("x", popularity=10)
    duplicate = make_track("x", popularity=90)
    other = make_track("y")
    ref = make_track("ref")

    unique = unique_by_id([ref, first, other, duplicate], exclude={"ref"})

    assert [track.track_id for track in unique] == ["x", "y"]
    assert unique[0].popularity == 10
