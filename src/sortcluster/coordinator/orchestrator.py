"""Sort orchestration: drives one sort run across the eligible workers."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from sortcluster.algorithms import Algorithm, Chunk, get_algorithm
from sortcluster.algorithms.oddeven import OddEvenSortEngine, ProgressEvent, format_values
from sortcluster.algorithms.partition import Number
from sortcluster.coordinator.broadcaster import EventBroadcaster
from sortcluster.coordinator.registry import WorkerRegistry
from sortcluster.errors import (
    AlgorithmLoadError,
    NoEligibleWorkers,
    RunInProgress,
    SortClusterError,
    ValidationError,
)
from sortcluster.protocol.messages import EventType, WorkerStatus

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Configuration for sort runs."""

    value_range: int = 1000  # generated values are in [0, value_range)
    default_workers: int = 4  # worker count for POST /sort when omitted
    max_length: Optional[int] = 10000  # longest array a run may sort (None = no limit)
    seed: Optional[int] = None
    reject_concurrent_runs: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrchestratorConfig":
        """Create config from the ``sort`` section of the config file."""
        return cls(
            value_range=data.get("value_range", 1000),
            default_workers=data.get("default_workers", 4),
            max_length=data.get("max_length", 10000),
            seed=data.get("seed"),
            reject_concurrent_runs=data.get("reject_concurrent_runs", True),
        )


class RunState(str, Enum):
    RUNNING = "running"
    CONVERGED = "converged"
    ERRORED = "errored"


@dataclass
class SortRun:
    """A single sort invocation."""

    run_id: str
    algorithm: str
    array_length: int
    worker_ids: Tuple[str, ...]
    input_values: List[Number] = field(default_factory=list)
    state: RunState = RunState.RUNNING
    round: int = 0
    coordinator_id: Optional[str] = None
    error: Optional[str] = None
    result: Optional[List[Number]] = None
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "runId": self.run_id,
            "algorithm": self.algorithm,
            "arrayLength": self.array_length,
            "workers": list(self.worker_ids),
            "state": self.state.value,
            "round": self.round,
            "coordinatorId": self.coordinator_id,
            "error": self.error,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }


class SortOrchestrator:
    """
    Runs sorts against the current cluster membership.

    Responsibilities:
    - Validate sort requests before anything is published
    - Partition the input across the eligible workers
    - Hold the coordinator in ``working`` for the length of a run
    - Forward engine progress to observers
    - Always restore the coordinator and report the outcome

    The eligible worker set is captured when a run starts and is not
    re-read while it is in flight.
    """

    def __init__(
        self,
        registry: WorkerRegistry,
        broadcaster: EventBroadcaster,
        config: Optional[OrchestratorConfig] = None,
    ):
        """
        Initialize SortOrchestrator.

        Args:
            registry: Worker registry
            broadcaster: Event broadcaster
            config: Orchestrator configuration
        """
        self.registry = registry
        self.broadcaster = broadcaster
        self.config = config or OrchestratorConfig()

        self._rng = np.random.default_rng(self.config.seed)
        self._current_run: Optional[SortRun] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def current_run(self) -> Optional[SortRun]:
        """The most recent run, active or finished."""
        return self._current_run

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def generate_array(self, length: int) -> List[int]:
        """Random integers in ``[0, value_range)``."""
        return self._rng.integers(0, self.config.value_range, size=length).tolist()

    def _check_length(self, length: int, field_name: str):
        max_length = self.config.max_length
        if max_length is not None and length > max_length:
            raise ValidationError(f"{field_name} must be at most {max_length}, got {length}")

    def _progress_sink(self, run: Optional[SortRun] = None):
        def forward(event: ProgressEvent):
            if run is not None and event.round is not None:
                run.round = event.round
            payload = event.to_dict()
            if run is not None:
                payload["runId"] = run.run_id
            self.broadcaster.publish(EventType.SORT_PROGRESS, payload)
            self.broadcaster.log(event.message)
        return forward

    def _build_engine(
        self,
        algorithm: Algorithm,
        chunks: List[Chunk],
        run: Optional[SortRun] = None,
    ) -> OddEvenSortEngine:
        try:
            return algorithm.engine_factory(chunks, self._progress_sink(run))
        except Exception as e:
            logger.error(f"Error loading algorithm {algorithm.key}: {e}")
            raise AlgorithmLoadError("Failed to load algorithm module") from e

    async def start_sort(self, algorithm_key: str, array_length: int) -> SortRun:
        """
        Start an asynchronous sort of a freshly generated array.

        Returns as soon as the run is launched; completion is reported
        through sort_complete or sort_error events.

        Args:
            algorithm_key: Key of a registered algorithm
            array_length: Length of the array to generate

        Returns:
            The launched run

        Raises:
            UnknownAlgorithm: If the key is not registered
            ValidationError: If the length exceeds ``max_length``
            RunInProgress: If another run is active
            NoEligibleWorkers: If no worker is connected or working
            InvalidPartition: If there are more workers than elements
            AlgorithmLoadError: If the engine cannot be created
        """
        algorithm = get_algorithm(algorithm_key)
        self._check_length(array_length, "arrayLength")

        if self.config.reject_concurrent_runs and self.is_running:
            raise RunInProgress(
                f"Sort run {self._current_run.run_id} is still in progress"
            )

        worker_ids = tuple(self.registry.list_active())
        if not worker_ids:
            raise NoEligibleWorkers("No active workers available for sorting")

        values = self.generate_array(array_length)
        chunks = algorithm.partition(values, len(worker_ids))

        run = SortRun(
            run_id=uuid.uuid4().hex[:12],
            algorithm=algorithm.key,
            array_length=array_length,
            worker_ids=worker_ids,
            input_values=list(values),
        )
        engine = self._build_engine(algorithm, chunks, run)

        self.broadcaster.log(
            f"Starting sort: algorithm={algorithm.key}, arrayLength={array_length}"
        )
        self.broadcaster.log(f"Generated random array: {format_values(values)}")

        for worker_id, chunk in zip(worker_ids, chunks):
            self.broadcaster.publish(EventType.ASSIGN_CHUNK, {
                "workerId": worker_id,
                "runId": run.run_id,
                **chunk.to_dict(),
            })
            self.broadcaster.log(
                f"Assigned chunk of size {len(chunk)} to Worker {worker_id}"
            )

        # No await between the in-progress check and creating the task.
        self._current_run = run
        self._task = asyncio.create_task(self._execute(run, engine))
        logger.info(f"Sort run {run.run_id} started with {len(worker_ids)} workers")
        return run

    async def _execute(self, run: SortRun, engine: OddEvenSortEngine):
        """Run the engine to convergence, yielding between rounds."""
        run.coordinator_id = await self.registry.mark_coordinator(WorkerStatus.WORKING)

        try:
            engine.local_sort()
            while not engine.converged:
                await asyncio.sleep(0)
                engine.run_round()
            result = engine.merge()
        except Exception as e:
            run.state = RunState.ERRORED
            run.error = str(e)
            run.finished_at = time.time()
            if not isinstance(e, SortClusterError):
                logger.exception(f"Unexpected error in sort run {run.run_id}")
            else:
                logger.error(f"Error during parallel sort {run.run_id}: {e}")

            self.broadcaster.log(f"Error during sorting: {e}")
            await self._restore_coordinator(run)
            self.broadcaster.publish(EventType.SORT_ERROR, {
                "message": str(e),
                "runId": run.run_id,
            })
            return

        run.state = RunState.CONVERGED
        run.result = result
        run.round = engine.round
        run.finished_at = time.time()

        self.broadcaster.log(f"Sorting complete. Final array: {format_values(result)}")
        await self._restore_coordinator(run)
        self.broadcaster.publish(EventType.SORT_COMPLETE, {
            "sortedArray": result,
            "runId": run.run_id,
            "rounds": engine.round,
        })
        logger.info(
            f"Sort run {run.run_id} converged after {engine.round} rounds, "
            f"{engine.swap_count} swaps"
        )

    async def _restore_coordinator(self, run: SortRun):
        if run.coordinator_id is not None:
            await self.registry.set_status(run.coordinator_id, WorkerStatus.CONNECTED)

    async def wait_for_idle(self, timeout: Optional[float] = None) -> Optional[SortRun]:
        """Wait until the active run (if any) has finished."""
        if self._task is not None:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        return self._current_run

    async def sort_array(
        self,
        algorithm_key: str,
        values: Sequence[Number],
        num_workers: Optional[int] = None,
    ) -> List[Number]:
        """
        Sort an explicit array and return the result.

        The run does not touch worker statuses; progress is still broadcast.

        Args:
            algorithm_key: Key of a registered algorithm
            values: Array to sort
            num_workers: Chunk count (config default if None)

        Returns:
            Sorted array
        """
        algorithm = get_algorithm(algorithm_key)
        self._check_length(len(values), "array length")
        if num_workers is None:
            num_workers = self.config.default_workers

        chunks = algorithm.partition(values, num_workers)
        engine = self._build_engine(algorithm, chunks)
        result = engine.sort()
        logger.info(
            f"Manual sort of {len(values)} values across {num_workers} chunks "
            f"finished after {result.rounds} rounds"
        )
        return result.values
