"""Split an array into contiguous per-worker chunks."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Union

from sortcluster.errors import InvalidPartition

Number = Union[int, float]


@dataclass
class Chunk:
    """A contiguous slice of the input array and where it started."""

    values: List[Number] = field(default_factory=list)
    offset: int = 0

    def __len__(self) -> int:
        return len(self.values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"chunk": list(self.values), "offset": self.offset}


def chunk_sizes(length: int, num_chunks: int) -> List[int]:
    """Sizes of each chunk: the first ``length % num_chunks`` get one extra."""
    base, remainder = divmod(length, num_chunks)
    return [base + (1 if i < remainder else 0) for i in range(num_chunks)]


def split_into_chunks(values: Sequence[Number], num_chunks: int) -> List[Chunk]:
    """
    Split ``values`` into ``num_chunks`` contiguous, non-overlapping chunks.

    Args:
        values: Input array (not modified)
        num_chunks: Number of chunks, one per worker

    Returns:
        Chunks in offset order; concatenating them reproduces ``values``

    Raises:
        InvalidPartition: If ``num_chunks`` is not positive or exceeds the
            array length (every chunk must hold at least one element)
    """
    length = len(values)
    if num_chunks <= 0:
        raise InvalidPartition(f"worker count must be positive, got {num_chunks}")
    if num_chunks > length:
        raise InvalidPartition(
            f"cannot split {length} element(s) across {num_chunks} workers"
        )

    chunks = []
    cursor = 0
    for size in chunk_sizes(length, num_chunks):
        chunks.append(Chunk(values=list(values[cursor:cursor + size]), offset=cursor))
        cursor += size
    return chunks
