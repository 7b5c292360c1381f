"""
=============================================================================
WORKER POOL
=============================================================================

Connections are handled on a bounded pool of daemon threads instead of one
new thread per connection. A burst of clients then costs at most
max_workers threads plus queue_size queued connections; anything beyond
that is refused at submit() time.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ThreadPool                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept loop ──submit(conn)──►  TASK QUEUE (maxsize=queue_size)    │
    │                                  [conn] [conn] [conn] ...            │
    │                                        │                             │
    │                                        │ get()                       │
    │                                        ▼                             │
    │   ┌──────────┐ ┌──────────┐ ┌──────────┐        ┌──────────┐        │
    │   │ Worker 0 │ │ Worker 1 │ │ Worker 2 │  ...   │ Worker N │        │
    │   └──────────┘ └──────────┘ └──────────┘        └──────────┘        │
    │    min_workers at start, grows to max_workers while every worker    │
    │    is busy and connections are waiting                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Shutdown uses the poison pill pattern: one None per worker is queued and
each worker exits when it takes one.

A stuck client occupies one worker only until its socket timeout fires;
the pool itself never interrupts a running task.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, List, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred call: func(*args, **kwargs).

    submitted_at lets the worker log how long the task sat in the queue.
    """

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Pulls tasks off the queue until it receives a poison pill or is told
    to stop. A failing task is logged and never takes the worker down.
    """

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
        waited = start_time - task.submitted_at

        try:
            task.func(*task.args, **task.kwargs)

            elapsed = time.time() - start_time
            logger.debug(
                f"Worker {self.worker_id} completed task in {elapsed:.3f}s "
                f"(queued {waited:.3f}s)"
            )
            self.tasks_completed += 1

        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Bounded, growing pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=64, queue_size=256)
        pool.start()
        if not pool.submit(handle, args=(conn,), block=False):
            conn.close()  # queue full
        pool.shutdown()
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 64,
        queue_size: int = 256,
        idle_timeout: float = 1.0
    ):
        """
        Args:
            min_workers: Workers created by start().
            max_workers: Upper bound reached by scaling up under load.
            queue_size: Maximum number of queued tasks.
            idle_timeout: How often an idle worker checks for shutdown.
        """
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(
                f"Invalid worker bounds: min={min_workers}, max={max_workers}"
            )

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()  # protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._spawn_worker()
        self._started = True

    def _spawn_worker(self) -> Worker:
        # Caller holds self._lock.
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = True
    ) -> bool:
        """
        Queue func(*args, **kwargs) for a worker.

        Args:
            block: Wait for queue space when the queue is full.

        Returns:
            True if queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        try:
            self._task_queue.put(task, block=block)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker when all are busy and tasks are waiting."""
        with self._lock:
            count = len(self._workers)
            if count >= self.max_workers:
                return
            busy = self.busy_workers
            if busy == count and self._task_queue.qsize() > 0:
                logger.debug(f"Scaling up: {count} -> {count + 1} workers")
                self._spawn_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop accepting tasks and stop the workers.

        Args:
            wait: Let queued tasks finish first.
            timeout: Longest to wait for the queue to drain.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        if wait:
            deadline = time.time() + timeout if timeout else None
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.time() > deadline:
                    logger.warning("Shutdown timeout, forcing stop")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for _ in workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                break  # workers also exit via their shutdown event

        for worker in workers:
            worker.shutdown()
        for worker in workers:
            worker.join(timeout=2.0)

        self._started = False
        logger.info("Thread pool shutdown complete")

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def queue_size(self) -> int:
        """Tasks currently waiting."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": {
                "total": self.worker_count,
                "busy": self.busy_workers,
            },
            "tasks": {
                "queued": self.queue_size,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
