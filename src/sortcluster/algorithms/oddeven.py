"""Parallel odd-even transposition sort over per-worker chunks.

Each worker slot holds a contiguous chunk of the input array.

1. Every chunk is sorted locally (insertion sort).
2. Rounds repeat until a round makes no swap:
   - odd sub-phase: chunk pairs (1,2), (3,4), ...
   - even sub-phase: chunk pairs (0,1), (2,3), ...
   For each pair the last element of the lower chunk is compared with the
   first element of the upper chunk; if it is strictly greater the two
   boundary elements are exchanged and both chunks are re-sorted.
3. The chunks are concatenated in offset order.

Every exchange moves a larger value to a higher position and a smaller
value to a lower one, so the number of inversions strictly decreases and
the loop terminates. Once no boundary pair is out of order and every chunk
is sorted, the concatenation is globally sorted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sortcluster.algorithms.partition import Chunk, Number
from sortcluster.errors import SortExecutionError

logger = logging.getLogger(__name__)


def insertion_sort(values: List[Number], start: int = 0, end: Optional[int] = None):
    """Stable in-place insertion sort of ``values[start:end]``."""
    if end is None:
        end = len(values)
    for i in range(start + 1, end):
        key = values[i]
        j = i - 1
        while j >= start and values[j] > key:
            values[j + 1] = values[j]
            j -= 1
        values[j + 1] = key


@dataclass
class ProgressEvent:
    """A single step of engine progress."""

    phase: str  # "local", "odd", "even", "round", "merge"
    message: str
    round: Optional[int] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "phase": self.phase,
            "round": self.round,
            "message": self.message,
            **self.detail,
        }


@dataclass
class SortResult:
    """Outcome of a completed engine run."""

    values: List[Number]
    rounds: int
    swaps: int


ProgressCallback = Callable[[ProgressEvent], None]


class OddEvenSortEngine:
    """
    Odd-even transposition sort across chunk boundaries.

    The engine performs no I/O. Callers that need to interleave other work
    drive it step by step (``local_sort``, ``run_round`` until ``converged``,
    ``merge``); everyone else calls ``sort``.
    """

    key = "oddevensort"

    def __init__(
        self,
        chunks: List[Chunk],
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Initialize OddEvenSortEngine.

        Args:
            chunks: Chunks in offset order; mutated in place
            on_progress: Optional callback receiving every progress event
        """
        self.chunks = chunks
        self.on_progress = on_progress

        self.round = 0
        self.swap_count = 0
        self.converged = False
        self._locally_sorted = False

    def _emit(self, event: ProgressEvent):
        logger.debug(event.message)
        if self.on_progress:
            self.on_progress(event)

    def _validate(self):
        if not self.chunks:
            raise SortExecutionError("no chunks to sort")
        for i, chunk in enumerate(self.chunks):
            if not chunk.values:
                raise SortExecutionError(f"chunk {i} (offset {chunk.offset}) is empty")

    def local_sort(self):
        """Sort every chunk independently."""
        self._validate()

        for i, chunk in enumerate(self.chunks):
            insertion_sort(chunk.values)
            self._emit(ProgressEvent(
                phase="local",
                message=f"Worker {i} locally sorted its chunk: {format_values(chunk.values)}",
                detail={"worker": i, "chunk": list(chunk.values), "offset": chunk.offset},
            ))

        self._locally_sorted = True
        # One chunk is already globally sorted.
        if len(self.chunks) == 1:
            self.converged = True

    def _try_swap(self, lower: Chunk, upper: Chunk) -> bool:
        """Exchange the boundary elements of two neighbours if out of order."""
        last = lower.values[-1]
        first = upper.values[0]

        if last > first:
            lower.values[-1] = first
            upper.values[0] = last
            insertion_sort(lower.values)
            insertion_sort(upper.values)
            return True
        return False

    def _run_phase(self, phase: str, start: int) -> int:
        swaps = 0
        for w in range(start, len(self.chunks) - 1, 2):
            if self._try_swap(self.chunks[w], self.chunks[w + 1]):
                swaps += 1
                self._emit(ProgressEvent(
                    phase=phase,
                    round=self.round,
                    message=(
                        f"Round {self.round} {phase.capitalize()} Phase: "
                        f"Worker {w} <-> Worker {w + 1} swapped."
                    ),
                    detail={"pair": [w, w + 1]},
                ))
        return swaps

    def run_round(self) -> int:
        """
        Run one odd sub-phase followed by one even sub-phase.

        Returns:
            Number of boundary swaps made in this round
        """
        if not self._locally_sorted:
            self.local_sort()
        if self.converged:
            return 0

        swaps = self._run_phase("odd", 1) + self._run_phase("even", 0)

        self._emit(ProgressEvent(
            phase="round",
            round=self.round,
            message=f"Round {self.round} completed. Swapped {str(swaps > 0).lower()}.",
            detail={"swaps": swaps},
        ))

        self.swap_count += swaps
        self.round += 1
        if swaps == 0:
            self.converged = True
        return swaps

    def merge(self) -> List[Number]:
        """Concatenate all chunks in ascending offset order."""
        if not self.converged:
            raise SortExecutionError("cannot merge before the exchange phase converged")

        merged: List[Number] = []
        for chunk in sorted(self.chunks, key=lambda c: c.offset):
            merged.extend(chunk.values)

        self._emit(ProgressEvent(
            phase="merge",
            round=self.round,
            message=f"All rounds done. Final merged array length = {len(merged)}.",
            detail={"length": len(merged)},
        ))
        return merged

    def sort(self) -> SortResult:
        """Run the engine to convergence and return the merged array."""
        self.local_sort()
        while not self.converged:
            self.run_round()
        return SortResult(values=self.merge(), rounds=self.round, swaps=self.swap_count)


def format_values(values: List[Number]) -> str:
    """Render an array the way the event log shows it."""
    return "[" + ", ".join(str(v) for v in values) + "]"
