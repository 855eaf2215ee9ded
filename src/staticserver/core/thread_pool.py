"""
=============================================================================
THREAD POOL
=============================================================================

Runs connection handlers on a bounded set of worker threads.

=============================================================================
WHY A POOL?
=============================================================================

Serving a file mostly waits: on the disk, on the client's socket, or on the
proxy upstream. Threads are a good fit for waiting, and the GIL is released
during every blocking read and sendall().

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   Accept loop ──► submit(conn) ──► [ job queue ] ──► Worker-0       │
    │                                         │        ──► Worker-1       │
    │                                         │        ──► ...            │
    │                                         │        ──► Worker-N       │
    │                                         │                           │
    │                         queue full → submit() returns False         │
    │                                      → caller answers 503           │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

min_workers threads start immediately. When no worker is idle and jobs
are waiting, one more is added, up to max_workers.

Shutdown puts one None per worker on the queue; a worker that takes one
leaves its loop.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

# (callable, positional args)
Job = Tuple[Callable[..., None], tuple]


class Worker(threading.Thread):
    """
    Takes jobs off the shared queue until it receives None.

    A failing job is logged with its traceback; the worker carries on.
    """

    def __init__(self, jobs: "queue.Queue[Optional[Job]]", worker_id: int):
        # daemon: a client that never sends anything must not keep the process alive
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.jobs = jobs
        self.worker_id = worker_id
        self.busy = False

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            job = self.jobs.get()
            try:
                if job is None:
                    break
                self._run_job(job)
            finally:
                self.jobs.task_done()

        logger.debug(f"Worker {self.worker_id} stopped")

    def _run_job(self, job: Job):
        func, args = job
        self.busy = True
        started = time.time()
        try:
            func(*args)
        except Exception as e:
            logger.exception(
                f"Worker {self.worker_id} job failed after {time.time() - started:.3f}s: {e}"
            )
        finally:
            self.busy = False


class ThreadPool:
    """
    Bounded pool of Worker threads fed from one queue.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=16)
        pool.start()
        if not pool.submit(process_connection, args=(conn,)):
            ...  # overloaded, answer 503
        pool.shutdown(wait=True, timeout=30.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        max_queue: int = 100,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue = max_queue

        self._jobs: "queue.Queue[Optional[Job]]" = queue.Queue(maxsize=max_queue)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._stopping = False

    @property
    def size(self) -> int:
        """Number of worker threads currently running."""
        return len(self._workers)

    @property
    def pending(self) -> int:
        """Jobs waiting for a worker."""
        return self._jobs.qsize()

    def start(self):
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        self._stopping = False
        with self._lock:
            for _ in range(self.min_workers):
                self._spawn()
        self._started = True

    def _spawn(self) -> Worker:
        # caller holds self._lock
        worker = Worker(self._jobs, worker_id=len(self._workers))
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., None], args: tuple = ()) -> bool:
        """
        Queue func(*args) for a worker without blocking.

        Returns:
            True if queued, False if the queue was full.

        Raises:
            RuntimeError: Pool not started or shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._stopping:
            raise RuntimeError("Thread pool is shutting down")

        try:
            self._jobs.put_nowait((func, args))
        except queue.Full:
            return False

        self._grow_if_saturated()
        return True

    def _grow_if_saturated(self):
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            if any(not w.busy for w in self._workers):
                return
            if self._jobs.qsize() > 0:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._spawn()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued jobs start before stopping.
            timeout: Upper bound on that wait, in seconds.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._stopping = True

        if wait:
            deadline = time.time() + timeout if timeout else None
            while not self._jobs.empty():
                if deadline is not None and time.time() > deadline:
                    logger.warning("Shutdown timeout, forcing stop")
                    break
                time.sleep(0.1)

        for _ in self._workers:
            try:
                self._jobs.put(None, timeout=1.0)
            except queue.Full:
                logger.warning("Job queue full during shutdown; a worker may linger")

        for worker in self._workers:
            worker.join(timeout=2.0)

        self._workers.clear()
        self._started = False
        logger.info("Thread pool shutdown complete")
