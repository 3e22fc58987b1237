import asyncio
import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple, Union

from mediajobs.errors import (
    JobAlreadyTerminalError,
    JobNotFoundError,
    RegistryError,
    UnauthorizedError,
)
from mediajobs.models import Job, JobKind, JobStatus
from mediajobs.processors import (
    Failed,
    JobProcessor,
    Processing,
    ProcessorRegistry,
    Succeeded,
    build_registry,
    validate_registry,
)
from mediajobs.processors.base import describe_error
from mediajobs.services import JobQueue
from mediajobs.store import JobStore

logger = logging.getLogger(__name__)

# Progress written while a processor reports "processing" without a number
PLACEHOLDER_PROGRESS = 50
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100

Outcome = Union[Succeeded, Failed]
# Yields seconds to pause before the next poll, returns the final record
Lifecycle = Generator[float, None, Job]


def _advance(steps: Lifecycle) -> Tuple[bool, Any]:
    try:
        return False, next(steps)
    except StopIteration as stop:
        return True, stop.value


class JobRunner:
    """
    Drives jobs from submission to a terminal state.

    submit() stores a pending job and either queues it for a worker process
    or dispatches it here. A dispatched job runs as a sequence of short steps
    (mark it loading, start the processor, one poll per step) on a thread
    pool; the pauses between polls are awaited on an event loop thread, so a
    job waiting on its provider holds no worker. Processor errors end up on
    the job record and never escape.

    process() runs the same lifecycle on the calling thread, using `sleep`
    for the pauses.
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        processors: Optional[ProcessorRegistry] = None,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        max_workers: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
        queue: Optional[JobQueue] = None,
    ):
        self.store = store or JobStore()
        self.processors = validate_registry(processors) if processors is not None else build_registry()
        self.poll_interval = float(
            poll_interval if poll_interval is not None else os.environ.get("JOB_POLL_INTERVAL", "5")
        )
        self.max_attempts = int(
            max_attempts if max_attempts is not None else os.environ.get("JOB_MAX_POLL_ATTEMPTS", "240")
        )
        self.sleep = sleep
        self.queue = queue

        workers = int(max_workers if max_workers is not None else os.environ.get("JOB_WORKERS", "8"))
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mediajobs-runner")
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None

    # Submission

    def submit(self, kind: JobKind, input: Dict[str, Any], user_id: str) -> str:
        job = self.store.create(user_id, JobKind(kind), input)
        logger.info("Submitted job %s (%s) for user %s", job.job_id, job.kind.value, user_id)

        if self.queue is not None:
            self.queue.send(job.job_id, job.kind.value)
        else:
            self.dispatch(job.job_id)
        return job.job_id

    def dispatch(self, job_id: str) -> Future:
        """Starts the lifecycle of an existing job in the background."""
        future = asyncio.run_coroutine_threadsafe(self._run(job_id), self._event_loop())
        with self._lock:
            self._futures[job_id] = future
        future.add_done_callback(lambda _, job_id=job_id: self._forget(job_id))
        return future

    def _event_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                self._loop_thread = threading.Thread(
                    target=self._loop.run_forever, name="mediajobs-poller", daemon=True
                )
                self._loop_thread.start()
            return self._loop

    def _forget(self, job_id: str):
        with self._lock:
            self._futures.pop(job_id, None)

    def wait(self, job_id: str, timeout: Optional[float] = None):
        """Blocks until the background work for job_id is done. Returns at once if none is running."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            wait([future], timeout=timeout)

    def drain(self, timeout: Optional[float] = None):
        with self._lock:
            futures = list(self._futures.values())
        wait(futures, timeout=timeout)

    def shutdown(self, wait: bool = True):
        if wait:
            self.drain()
        with self._lock:
            loop, thread = self._loop, self._loop_thread
            self._loop = self._loop_thread = None
        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)
            thread.join()
            loop.close()
        self._pool.shutdown(wait=wait)

    async def _run(self, job_id: str):
        loop = asyncio.get_running_loop()
        steps = self._lifecycle(job_id)
        try:
            while True:
                done, value = await loop.run_in_executor(self._pool, _advance, steps)
                if done:
                    return value
                await asyncio.sleep(value)
        except Exception as e:
            logger.exception("Failed to process job %s", job_id)
            await loop.run_in_executor(self._pool, self._mark_failed, job_id, describe_error(e))

    # Lifecycle

    def process(self, job_id: str) -> Job:
        """
        Runs the whole lifecycle of one job on the calling thread and returns
        its final record.
        """
        steps = self._lifecycle(job_id)
        while True:
            done, value = _advance(steps)
            if done:
                return value
            self.sleep(value)

    def _lifecycle(self, job_id: str) -> Lifecycle:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.is_terminal:
            logger.info("Job %s is already %s, skipping", job_id, job.status.value)
            return job

        processor = self.processors.get(job.kind)
        if processor is None:
            raise RegistryError(f"No processor registered for {job.kind.value}")

        try:
            self.store.update(job_id, status=JobStatus.LOADING, progress=0)
            logger.info("Job %s started (%s)", job_id, job.kind.value)
            outcome = yield from self._execute(job_id, processor, job.input)
        except JobAlreadyTerminalError as e:
            logger.warning("Job %s was finalized elsewhere: %s", job_id, e)
            return self.store.get(job_id)
        except Exception as e:
            logger.warning("Job %s raised during processing: %s", job_id, e)
            outcome = Failed(error=describe_error(e))

        return self._finalize(job_id, outcome)

    def _execute(
        self, job_id: str, processor: JobProcessor, input: Dict[str, Any]
    ) -> Generator[float, None, Outcome]:
        started = processor.start(input)

        if started.is_sync:
            # Finished inside start(): no intermediate progress is written
            if started.result is None:
                return Failed(error="Sync processor must return a result")
            return started.result

        return (yield from self._poll(job_id, processor, started.handle))

    def _poll(self, job_id: str, processor: JobProcessor, handle: str) -> Generator[float, None, Outcome]:
        progress = 0
        for attempt in range(1, self.max_attempts + 1):
            yield self.poll_interval
            outcome = processor.poll(handle)

            if isinstance(outcome, Processing):
                reported = outcome.progress if outcome.progress is not None else PLACEHOLDER_PROGRESS
                # 100 is reserved for complete, and progress never goes backwards
                progress = max(progress, min(reported, 99))
                self.store.update(job_id, progress=progress)
                logger.debug("Job %s poll %d/%d: %d%%", job_id, attempt, self.max_attempts, progress)
                continue

            return outcome

        return Failed(error=f"Job polling timed out after {self.max_attempts} attempts")

    def _finalize(self, job_id: str, outcome: Outcome) -> Job:
        try:
            if isinstance(outcome, Succeeded):
                job = self.store.update(
                    job_id, status=JobStatus.COMPLETE, progress=100, result=outcome.data
                )
                logger.info("Job %s completed successfully", job_id)
            else:
                error = outcome.error or "Unknown error"
                job = self.store.update(job_id, status=JobStatus.FAILED, error=error)
                logger.warning("Job %s failed: %s", job_id, error)
            return job
        except JobAlreadyTerminalError as e:
            logger.warning("Dropping final write for job %s: %s", job_id, e)
            return self.store.get(job_id)

    def _mark_failed(self, job_id: str, message: str):
        try:
            self.store.update(job_id, status=JobStatus.FAILED, error=message)
        except JobAlreadyTerminalError:
            pass
        except Exception:
            logger.exception("Could not mark job %s as failed", job_id)

    # Reads

    def get_status(self, job_id: str, user_id: str) -> Dict[str, Any]:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.user_id != user_id:
            raise UnauthorizedError()
        return job.view()

    def list_jobs(
        self,
        user_id: str,
        limit: Optional[int] = None,
        status: Optional[JobStatus] = None,
        kind: Optional[JobKind] = None,
    ) -> List[Dict[str, Any]]:
        limit = DEFAULT_LIST_LIMIT if limit is None else int(limit)
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        jobs = self.store.find_many(
            user_id,
            status=JobStatus(status) if status else None,
            kind=JobKind(kind) if kind else None,
            limit=limit,
        )
        return [job.view() for job in jobs]
