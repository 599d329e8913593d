"""
Batch Scheduler.

Admits queued tasks into a bounded set of running tasks. One scheduler exists per
task class (video, audio), so each class has its own concurrency limit.

The scheduler only knows task ids. Starting a job is delegated to the `start_job`
callback, and the owner reports the end of a job with `task_finished`. A job can
finish while the admission loop is still running (a launch failure ends a task
synchronously); such a call only requests another admission pass, so no
wake-up is lost and the loop never runs nested.

At every point `len(running) <= concurrency_limit`, and no id is both queued and
running.
"""

from typing import Callable, Iterable, List, Set

from loguru import logger

from ..config.common import (
    BATCH_STATUS_IDLE,
    BATCH_STATUS_RUNNING,
    BATCH_STATUS_STOPPING,
    DEFAULT_PARALLEL_TASKS,
)
from ..domain.models import BatchState


class BatchScheduler:
    """
    Bounded-concurrency queue of task ids.

    Args:
        task_class: "video" or "audio"; used in log messages.
        start_job: Starts the job of a task id. Returns False if no job was started.
        concurrency_limit: Maximum number of running jobs (at least 1).
    """

    def __init__(
        self,
        task_class: str,
        start_job: Callable[[str], bool],
        concurrency_limit: int = DEFAULT_PARALLEL_TASKS,
    ):
        self.task_class = task_class
        self._start_job = start_job
        self._concurrency_limit = max(1, int(concurrency_limit))
        self._status = BATCH_STATUS_IDLE
        self._queue: List[str] = []
        self._running: Set[str] = set()
        self._advancing = False
        self._rerun = False

    # --- Read-only view ---
    @property
    def state(self) -> BatchState:
        return BatchState(
            status=self._status,
            queue=tuple(self._queue),
            running=frozenset(self._running),
            concurrency_limit=self._concurrency_limit,
        )

    @property
    def concurrency_limit(self) -> int:
        return self._concurrency_limit

    def is_scheduled(self, task_id: str) -> bool:
        return task_id in self._running or task_id in self._queue

    # --- Operations ---
    def start(self, task_ids: Iterable[str]):
        """
        Queues task ids (in order, skipping ones already queued or running) and
        admits as many as the concurrency limit allows.
        """
        added = 0
        for task_id in task_ids:
            if self.is_scheduled(task_id):
                logger.debug(f"[{self.task_class}] Task {task_id} is already scheduled.")
                continue
            self._queue.append(task_id)
            added += 1

        if not self._queue and not self._running:
            logger.debug(f"[{self.task_class}] Nothing to start.")
            return

        self._status = BATCH_STATUS_RUNNING
        logger.info(
            f"[{self.task_class}] Batch running: {added} task(s) queued, "
            f"limit {self._concurrency_limit}."
        )
        self.advance()

    def advance(self):
        """
        Admission loop: moves queued ids into the running set until the limit is
        reached or the queue is empty.

        Called again while a pass is in progress, it only asks for one more pass.
        """
        if self._advancing:
            self._rerun = True
            return

        self._advancing = True
        try:
            while True:
                self._rerun = False
                self._admit()
                if not self._rerun:
                    break
        finally:
            self._advancing = False

        if self._status != BATCH_STATUS_IDLE and not self._running:
            if not self._queue:
                logger.info(f"[{self.task_class}] Batch finished. Scheduler is idle.")
                self._status = BATCH_STATUS_IDLE
            elif self._status == BATCH_STATUS_STOPPING:
                logger.info(f"[{self.task_class}] Stopped with {len(self._queue)} task(s) still queued.")
                self._status = BATCH_STATUS_IDLE

    def _admit(self):
        while (
            self._status == BATCH_STATUS_RUNNING
            and self._queue
            and len(self._running) < self._concurrency_limit
        ):
            task_id = self._queue.pop(0)
            self._running.add(task_id)
            logger.debug(
                f"[{self.task_class}] Admitted task {task_id} "
                f"({len(self._running)}/{self._concurrency_limit} running, {len(self._queue)} queued)."
            )
            started = self._start_job(task_id)
            if not started and task_id in self._running:
                # No job was started and nothing will report its end.
                self._running.discard(task_id)

    def task_finished(self, task_id: str):
        """
        Drops a task from the queue and the running set, then admits the next ones.
        Calling it again for the same id does nothing.
        """
        if task_id in self._queue:
            self._queue.remove(task_id)
        elif task_id in self._running:
            self._running.discard(task_id)
        else:
            logger.trace(f"[{self.task_class}] task_finished({task_id}) ignored: not scheduled.")
            return
        self.advance()

    def stop(self):
        """
        Stops admitting queued tasks. Running jobs are left to finish; nothing is
        killed and the queue is kept. The scheduler turns idle once the running set
        is empty, and a later `start` admits the kept queue first.
        """
        if self._status == BATCH_STATUS_IDLE:
            return
        self._status = BATCH_STATUS_STOPPING
        logger.info(
            f"[{self.task_class}] Stopping: {len(self._queue)} queued task(s) held, "
            f"waiting for {len(self._running)} running."
        )
        self.advance()

    def reset(self):
        """Forgets the queue and the running set and returns to idle."""
        self._queue.clear()
        self._running.clear()
        self._status = BATCH_STATUS_IDLE

    def remove(self, task_id: str) -> bool:
        """Drops a queued task id. Returns False if the id was not queued."""
        if task_id not in self._queue:
            return False
        self._queue.remove(task_id)
        if not self._queue and not self._running:
            self._status = BATCH_STATUS_IDLE
        return True

    def set_concurrency_limit(self, limit: int):
        """
        Changes the limit (values below 1 become 1). A higher limit admits queued
        tasks right away; a lower one only takes effect as running jobs finish.
        """
        self._concurrency_limit = max(1, int(limit))
        logger.debug(f"[{self.task_class}] Concurrency limit set to {self._concurrency_limit}.")
        if self._status == BATCH_STATUS_RUNNING:
            self.advance()
