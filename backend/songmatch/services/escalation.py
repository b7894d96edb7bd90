from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")
O = TypeVar("O")

ScoredQuery = Callable[[float, int], Awaitable[List[T]]]

logger = logging.getLogger("recommendations")


@dataclass(frozen=True, slots=True)
class ThresholdEscalator:
    """Retry a scored query with looser thresholds until enough rows come back.

    Runs at most ``len(thresholds)`` queries.
    """

    thresholds: Tuple[float, ...]

    def __post_init__(self) -> None:
        if not self.thresholds:
            raise ValueError("at least one threshold is required")
        if any(later <= earlier for earlier, later in zip(self.thresholds, self.thresholds[1:])):
            raise ValueError(f"thresholds must be strictly increasing: {self.thresholds}")

    async def run(self, query: ScoredQuery[T], *, count: int, minimum: int) -> List[T]:
        results: List[T] = []
        for threshold in self.thresholds:
            results = await query(threshold, count)
            logger.debug("Threshold %.2f returned %s candidates (need %s)", threshold, len(results), minimum)
            if len(results) >= minimum:
                break
        return results


def first_sufficient(options: Sequence[O], produce: Callable[[O], List[T]], minimum: int) -> List[T]:
    if not options:
        raise ValueError("at least one option is required")
    results: List[T] = []
    for option in options:
        results = produce(option)
        if len(results) >= minimum:
            break
    return results
