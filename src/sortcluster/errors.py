"""Error taxonomy shared by the coordinator, orchestrator and algorithms."""

from typing import Optional


class SortClusterError(Exception):
    """Base error that carries the HTTP status it maps to."""

    status: int = 500

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        if status is not None:
            self.status = status


class ValidationError(SortClusterError):
    """Malformed or missing request fields."""

    status = 400


class UnknownAlgorithm(SortClusterError):
    """Requested algorithm key is not in the algorithm registry."""

    status = 400


class UnknownWorker(SortClusterError):
    """Worker id is not present in the membership registry."""

    status = 400


class NoEligibleWorkers(SortClusterError):
    """No worker is connected or working when a sort is requested."""

    status = 400


class InvalidPartition(SortClusterError):
    """Array cannot be split into the requested number of non-empty chunks."""

    status = 400


class RunInProgress(SortClusterError):
    """A sort run is already active."""

    status = 409


class AlgorithmLoadError(SortClusterError):
    """Algorithm implementation could not be instantiated."""

    status = 500


class SortExecutionError(SortClusterError):
    """Engine invariant violated while sorting (e.g. an empty chunk)."""

    status = 500
