"""
=============================================================================
THREAD POOL FOR CONNECTION HANDLING
=============================================================================

One accepted connection = one task. A worker thread takes the task and
runs the whole keep-alive loop for that connection, so a slow client only
ever stalls its own worker.

    accept loop ──► submit(conn) ──► [ queue (bounded) ] ──► Worker-0
                        │                                ├─► Worker-1
                        │ queue full                     └─► ...
                        ▼
                  False → caller answers 503

Workers are created up front (min_workers) and added one at a time when
every worker is busy and tasks are waiting, up to max_workers. A task that
raises is logged; the worker survives.

Shutdown puts one poison pill (None) per worker on the queue.
=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: func(*args, **kwargs)."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """Pulls tasks off the shared queue until it receives a poison pill."""

    def __init__(self, task_queue: queue.Queue, worker_id: int, idle_timeout: float = 1.0):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()
        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(f"Worker {self.worker_id} completed task in {time.time() - start_time:.3f}s")
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(f"Worker {self.worker_id} task failed after {time.time() - start_time:.3f}s: {e}")
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Bounded pool of worker threads.

        pool = ThreadPool(min_workers=4, max_workers=16)
        pool.start()
        accepted = pool.submit(handle_connection, args=(conn,))
        pool.shutdown()
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
        idle_timeout: float = 1.0,
    ):
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(f"Invalid worker bounds: min={min_workers}, max={max_workers}")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.idle_timeout = idle_timeout
        self._task_queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        self._shutdown = False
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker_locked()
        self._started = True

    def _add_worker_locked(self) -> Worker:
        worker = Worker(self._task_queue, self._next_worker_id, self.idle_timeout)
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], args: tuple = (), kwargs: Optional[dict] = None) -> bool:
        """
        Queue a task without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: The pool is not running.
        """
        if not self._started or self._shutdown:
            raise RuntimeError("Thread pool is not running")

        try:
            self._task_queue.put_nowait(Task(func=func, args=args, kwargs=kwargs or {}))
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add one worker if every worker is busy and tasks are waiting."""
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            busy = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            if busy == len(self._workers) and self._task_queue.qsize() > 0:
                logger.debug(f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers")
                self._add_worker_locked()

    def shutdown(
        self,
        wait: bool = True,
        timeout: Optional[float] = None,
        on_discard: Optional[Callable[[Task], None]] = None,
    ):
        """
        Stop the pool.

        Tasks still queued are dropped, never run. Each one is passed to
        on_discard first so the caller can release what it holds.

        Args:
            wait: Join worker threads before returning.
            timeout: Per-worker join timeout when waiting.
            on_discard: Called with every queued task that will not run.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for task in self._drain():
            if on_discard is None:
                continue
            try:
                on_discard(task)
            except Exception:
                logger.exception("Discard callback failed")

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass  # Worker notices the shutdown flag on its next poll

        if wait:
            for worker in workers:
                worker.join(timeout=timeout)

        self._started = False
        logger.info("Thread pool shutdown complete")

    def _drain(self) -> list[Task]:
        """Remove every queued task."""
        pending = []
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                return pending
            self._task_queue.task_done()
            if task is not None:
                pending.append(task)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def queue_size(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": {"total": len(self._workers), "busy": self.busy_workers},
            "tasks": {
                "queued": self.queue_size,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
