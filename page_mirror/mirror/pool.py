"""
Bounded worker pool that runs download jobs.

Workers pull jobs from a two-tier queue, retry failed downloads with a
growing delay, and accumulate the origin -> local path map used by the
rewriter. Jobs discovered while processing other jobs (fonts inside a
stylesheet, stylesheets inside a script) go onto the same pool, and
``collect()`` waits until no work is left at all.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from .downloader import FetchError
from .jobs import AssetKind, CRITICAL, DEFERRED, DownloadOutcome, Job, JobResult
from .progress import ProgressCallback, ProgressReporter
from .storage import StorageError
from ..utils.constants import (
    DEFAULT_WORKERS,
    MIN_WORKERS,
    MAX_WORKERS,
    MAX_ATTEMPTS,
    RETRY_BASE_DELAY,
    MAX_PENDING_RETRIES,
    QUEUE_SIZE_FACTOR,
    PROGRESS_INTERVAL,
)
from ..utils.log import get_logger


JobHandler = Callable[[Job], Awaitable[DownloadOutcome]]


def validate_workers(workers: int) -> int:
    """
    Check an operator-supplied worker count.

    Raises:
        ValueError: If the count is outside the allowed range
    """
    if not MIN_WORKERS <= workers <= MAX_WORKERS:
        raise ValueError(
            f"Worker count must be between {MIN_WORKERS} and {MAX_WORKERS}, got {workers}"
        )
    return workers


class QueueShutDown(RuntimeError):
    """The queue no longer accepts jobs."""


class TieredJobQueue:
    """
    Bounded queue with a critical and a deferred tier.

    ``get()`` always returns a critical job when one is waiting and falls
    through to the deferred tier otherwise. Once shut down, ``get()`` drains
    what is left and then returns None.
    """

    def __init__(self, maxsize: int):
        self.maxsize = maxsize
        self._tiers = {CRITICAL: deque(), DEFERRED: deque()}
        self._cond = asyncio.Condition()
        self._shutdown = False

    def qsize(self) -> int:
        return len(self._tiers[CRITICAL]) + len(self._tiers[DEFERRED])

    async def put(self, job: Job, block: bool = True) -> None:
        """
        Add a job.

        Args:
            job: Job to queue
            block: Wait for free capacity. Internal re-queues pass False so
                a worker can never wait on its own queue.
        """
        async with self._cond:
            if block:
                await self._cond.wait_for(
                    lambda: self._shutdown or self.qsize() < self.maxsize
                )
            if self._shutdown:
                raise QueueShutDown("job queue is shut down")
            self._tiers[job.tier].append(job)
            self._cond.notify_all()

    async def get(self) -> Optional[Job]:
        async with self._cond:
            await self._cond.wait_for(lambda: self._shutdown or self.qsize() > 0)
            for tier in (CRITICAL, DEFERRED):
                if self._tiers[tier]:
                    job = self._tiers[tier].popleft()
                    # Wake producers waiting for capacity
                    self._cond.notify_all()
                    return job
            return None

    async def shutdown(self) -> None:
        async with self._cond:
            self._shutdown = True
            self._cond.notify_all()


@dataclass
class PoolReport:
    """Everything ``collect()`` returns."""

    asset_map: Dict[str, str] = field(default_factory=dict)
    results: List[JobResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def failures(self) -> List[JobResult]:
        return [r for r in self.results if not r.success]


class DownloadPool:
    """
    Runs jobs on a fixed number of asyncio workers.

    Usage::

        pool = DownloadPool(downloader.download, workers=10)
        await pool.start()
        for job in jobs:
            await pool.submit(job)
        pool.close()
        report = await pool.collect()
    """

    def __init__(
        self,
        handler: JobHandler,
        workers: int = DEFAULT_WORKERS,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_BASE_DELAY,
        queue_size: Optional[int] = None,
        max_pending_retries: int = MAX_PENDING_RETRIES,
        on_progress: Optional[ProgressCallback] = None,
        progress_interval: float = PROGRESS_INTERVAL
    ):
        """
        Initialize the pool.

        Args:
            handler: Coroutine function running one job to completion
            workers: Number of parallel workers (1-100)
            max_attempts: Attempts per job before it is marked failed
            retry_delay: Base delay; retry n waits n * retry_delay seconds
            queue_size: Capacity of the job queue (default: 4 per worker)
            max_pending_retries: Retry tasks allowed to wait at the same time
            on_progress: Optional ``callback(completed, total)``
            progress_interval: Minimum seconds between progress callbacks
        """
        self.handler = handler
        self.workers = validate_workers(workers)
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.logger = get_logger("pool")

        self._queue = TieredJobQueue(queue_size or workers * QUEUE_SIZE_FACTOR)
        self._retry_slots = asyncio.Semaphore(max_pending_retries)
        self._retry_tasks: Set[asyncio.Task] = set()
        self._worker_tasks: List[asyncio.Task] = []

        # Canonical URL -> job (with every origin seen for it)
        self._jobs: Dict[str, Job] = {}
        self._finished: Dict[str, JobResult] = {}
        self._results: List[JobResult] = []
        self._asset_map: Dict[str, str] = {}

        self._total = 0
        self._completed = 0
        self._in_flight = 0
        self._pending = 0
        self._settled = asyncio.Event()
        self._settled.set()

        self._closed = False
        self._collected = False

        self._reporter: Optional[ProgressReporter] = None
        if on_progress is not None:
            self._reporter = ProgressReporter(self.progress, on_progress, progress_interval)

    def progress(self) -> Tuple[int, int]:
        """Snapshot of (completed, total) jobs."""
        return self._completed, self._total

    def stats(self) -> Dict[str, int]:
        """Snapshot of the pool counters."""
        return {
            'queued': self._queue.qsize(),
            'in_flight': self._in_flight,
            'retrying': len(self._retry_tasks),
            'completed': self._completed,
            'total': self._total,
        }

    async def start(self) -> None:
        """Spawn the workers. Called implicitly by the first ``submit()``."""
        if self._worker_tasks:
            return
        self._worker_tasks = [
            asyncio.create_task(self._worker(i)) for i in range(self.workers)
        ]
        if self._reporter is not None:
            self._reporter.start()
        self.logger.debug(f"Started {self.workers} workers")

    async def submit(self, job: Job) -> bool:
        """
        Queue a job, waiting while the queue is full.

        A job whose canonical URL is already known is not queued again; its
        origin is recorded so it maps to the same local path.

        Args:
            job: Job to run

        Returns:
            True if the job was queued, False if it was merged into a
            known one

        Raises:
            RuntimeError: If the pool has been closed
        """
        if self._closed:
            raise RuntimeError("Cannot submit jobs after close()")
        if not self._worker_tasks:
            await self.start()
        return await self._enqueue(job, block=True)

    def close(self) -> None:
        """Stop accepting new jobs. Queued work and retries still run."""
        self._closed = True

    async def collect(self) -> PoolReport:
        """
        Wait for all work to finish and return the results.

        Returns once nothing is queued, running or waiting to be retried,
        including jobs discovered while the pool was draining.

        Returns:
            PoolReport with the asset map and one result per job
        """
        if self._collected:
            raise RuntimeError("collect() can only be called once")
        self._collected = True
        self.close()

        await self._settled.wait()
        await self._queue.shutdown()

        if self._worker_tasks:
            await asyncio.gather(*self._worker_tasks)
        if self._retry_tasks:
            await asyncio.gather(*list(self._retry_tasks))
        if self._reporter is not None:
            await self._reporter.stop()

        report = PoolReport(asset_map=dict(self._asset_map), results=list(self._results))
        self.logger.info(
            f"Downloaded {report.succeeded} assets, {report.failed} failed"
        )
        return report

    async def _enqueue(self, job: Job, block: bool) -> bool:
        if not self._register(job):
            return False
        await self._queue.put(job, block=block)
        return True

    def _register(self, job: Job) -> bool:
        known = self._jobs.get(job.url)
        if known is None:
            self._jobs[job.url] = job
            self._total += 1
            self._pending += 1
            self._settled.clear()
            return True

        for origin in job.origins:
            known = known.with_alias(origin)
        self._jobs[job.url] = known

        done = self._finished.get(job.url)
        if done is not None and done.success:
            for origin in job.origins:
                self._asset_map.setdefault(origin, done.local_path)
        return False

    async def _worker(self, worker_id: int) -> None:
        while True:
            job = await self._queue.get()
            if job is None:
                self.logger.debug(f"Worker {worker_id} exiting")
                return

            self._in_flight += 1
            try:
                await self._run(job)
            finally:
                self._in_flight -= 1

    async def _run(self, job: Job) -> None:
        try:
            outcome = await self.handler(job)
        except FetchError as e:
            await self._retry_or_fail(job, str(e))
            return
        except StorageError as e:
            self._finish(job, error=str(e))
            return
        except Exception as e:
            self.logger.debug(f"Error processing {job.url}: {e}", exc_info=True)
            self._finish(job, error=f"{type(e).__name__}: {e}")
            return

        if not outcome.local_path:
            self._finish(job, error="Handler returned an empty local path")
            return

        # Secondary jobs are queued before this one is finished, so the
        # pending count cannot reach zero in between.
        for discovered in outcome.discovered:
            await self._enqueue(discovered, block=False)

        self._finish(job, local_path=outcome.local_path)

    async def _retry_or_fail(self, job: Job, error: str) -> None:
        attempts = job.retries + 1
        if attempts >= self.max_attempts:
            self._finish(job, error=f"{error} (gave up after {attempts} attempts)")
            return

        retry = job.next_attempt()
        self.logger.debug(f"Retrying {job.url} (attempt {retry.retries + 1}): {error}")

        await self._retry_slots.acquire()
        task = asyncio.create_task(self._requeue(retry))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _requeue(self, job: Job) -> None:
        try:
            await asyncio.sleep(job.retries * self.retry_delay)
            await self._queue.put(job, block=False)
        except QueueShutDown as e:
            self._finish(job, error=str(e))
        finally:
            self._retry_slots.release()

    def _finish(
        self,
        job: Job,
        local_path: Optional[str] = None,
        error: Optional[str] = None
    ) -> None:
        if job.url in self._finished:
            self.logger.warning(f"Ignoring second completion for {job.url}")
            return

        known = self._jobs.get(job.url, job)
        result = JobResult(
            job=known,
            success=local_path is not None,
            local_path=local_path,
            error=error,
            attempts=job.retries + 1
        )
        self._finished[job.url] = result
        self._results.append(result)

        if result.success:
            for origin in known.origins:
                self._asset_map[origin] = local_path
        elif known.kind == AssetKind.FONT:
            self.logger.debug(f"Font failed: {job.url}: {error}")
        else:
            self.logger.warning(f"Primary asset failed: {job.url} ({known.kind}): {error}")

        self._completed += 1
        self._pending -= 1
        if self._pending == 0:
            self._settled.set()
