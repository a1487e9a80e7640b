"""Sorting algorithms available to the coordinator, resolved by key."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from sortcluster.algorithms.partition import Chunk, Number, split_into_chunks
from sortcluster.algorithms.oddeven import (
    OddEvenSortEngine,
    ProgressCallback,
    ProgressEvent,
    SortResult,
)
from sortcluster.errors import UnknownAlgorithm


@dataclass(frozen=True)
class Algorithm:
    """A partitioner plus an engine factory registered under a key."""

    key: str
    name: str
    description: str
    partition: Callable[[Sequence[Number], int], List[Chunk]]
    engine_factory: Callable[[List[Chunk], Optional[ProgressCallback]], OddEvenSortEngine]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the entry returned by GET /algorithms."""
        return {"name": self.name, "key": self.key, "description": self.description}


ALGORITHMS: Dict[str, Algorithm] = {
    OddEvenSortEngine.key: Algorithm(
        key=OddEvenSortEngine.key,
        name="Odd-Even Sort",
        description="Parallel odd-even sorting",
        partition=split_into_chunks,
        engine_factory=OddEvenSortEngine,
    ),
}


def get_algorithm(key: str) -> Algorithm:
    """Look up an algorithm by key, raising UnknownAlgorithm if absent."""
    try:
        return ALGORITHMS[key]
    except KeyError:
        raise UnknownAlgorithm(f"Unknown algorithm: {key}") from None


def list_algorithms() -> List[Dict[str, Any]]:
    """All registered algorithms in registration order."""
    return [algorithm.to_dict() for algorithm in ALGORITHMS.values()]


__all__ = [
    "ALGORITHMS",
    "Algorithm",
    "Chunk",
    "OddEvenSortEngine",
    "ProgressEvent",
    "SortResult",
    "get_algorithm",
    "list_algorithms",
    "split_into_chunks",
]
