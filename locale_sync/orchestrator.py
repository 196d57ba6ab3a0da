"""Bounded-concurrency execution of translation tasks."""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from tqdm import tqdm

from locale_sync.discovery import MissingTranslation

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


class TaskStatus(str, Enum):
    SUCCESS = 'success'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass
class TaskOutcome:
    task: MissingTranslation
    status: TaskStatus
    reason: Optional[str] = None
    written_path: Optional[str] = None


@dataclass
class BatchResult:
    outcomes: List[TaskOutcome] = field(default_factory=list)

    def _with_status(self, status: TaskStatus) -> List[TaskOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is status]

    @property
    def succeeded(self) -> List[TaskOutcome]:
        return self._with_status(TaskStatus.SUCCESS)

    @property
    def skipped(self) -> List[TaskOutcome]:
        return self._with_status(TaskStatus.SKIPPED)

    @property
    def failed(self) -> List[TaskOutcome]:
        return self._with_status(TaskStatus.FAILED)

    @property
    def written_paths(self) -> List[str]:
        return [outcome.written_path for outcome in self.succeeded if outcome.written_path]

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


Worker = Callable[[MissingTranslation], Awaitable[TaskOutcome]]
SettledCallback = Callable[[BatchResult], Any]


async def run_tasks(
        tasks: Sequence[MissingTranslation],
        worker: Worker,
        concurrency: int = DEFAULT_CONCURRENCY,
        on_settled: Optional[SettledCallback] = None,
        show_progress: bool = True
) -> BatchResult:
    """
    Run every task through ``worker`` with at most ``concurrency`` in flight.

    A task that raises is recorded as failed and does not affect the others;
    the batch only returns once every task has settled. ``on_settled`` is
    then called exactly once with the aggregated result, whatever the
    individual outcomes were. It may be a plain function or a coroutine
    function.

    Args:
        tasks: The tasks to run.
        worker: Coroutine function running one task and returning its outcome.
        concurrency: Maximum number of tasks running at the same time.
        on_settled: Optional callback fired after the last settlement.
        show_progress: Whether to draw a tqdm progress bar.

    Returns:
        BatchResult: One outcome per task, in the order the tasks were given.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    semaphore = asyncio.Semaphore(concurrency)
    progress = tqdm(total=len(tasks), desc="Translating", unit="file", disable=not show_progress)

    async def _settle(task: MissingTranslation) -> TaskOutcome:
        async with semaphore:
            try:
                outcome = await worker(task)
            except Exception as exc:
                logger.error("Translation failed for %s: %s", task, exc)
                logger.debug("Failure details for %s", task, exc_info=True)
                outcome = TaskOutcome(task=task, status=TaskStatus.FAILED, reason=str(exc) or exc.__class__.__name__)
        progress.update(1)
        return outcome

    try:
        outcomes = await asyncio.gather(*(_settle(task) for task in tasks))
    finally:
        progress.close()

    result = BatchResult(outcomes=list(outcomes))
    logger.info(
        "All %d task(s) settled: %d succeeded, %d skipped, %d failed.",
        len(result.outcomes), len(result.succeeded), len(result.skipped), len(result.failed)
    )

    if on_settled is not None:
        callback_result = on_settled(result)
        if inspect.isawaitable(callback_result):
            await callback_result

    return result
