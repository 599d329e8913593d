"""
Process Lifecycle Manager.

`TaskProcessManager` is the one place that knows which OS process belongs to which
task. It is created by the session and handed to the Job Driver; there is no
module-level registry. Each active task has a `ProcessRecord` holding the process
handle, the pause flag and everything needed to restart the job from scratch.

Pausing is a two-phase operation:
    1. tentative apply: the record is marked paused,
    2. commit or roll back: the suspend strategy runs; on failure the mark is undone.
The process is never killed by a failed pause or resume.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from loguru import logger

from .suspender import ProcessSuspender, default_suspender
from ..domain.media import MediaDescriptor
from ..domain.models import EncodingIntent, EncodingPlan


@dataclass
class ProcessRecord:
    """
    Everything the manager keeps for one active task.

    Attributes:
        task_id: The task id.
        descriptor, input_path, output_path, plan, intent: What the job was started
            with, kept so a job whose process is gone can be started again.
        process_id: OS process id, 0 until a process is attached.
        handle: The running `EncoderProcess` (anything with `poll()`), or None.
        paused: True while the process is suspended.
        paused_at_progress: Progress percent when the pause took effect.
        last_progress: The last percent reported for the running process.
    """

    task_id: str
    descriptor: MediaDescriptor
    input_path: Path
    output_path: Path
    plan: EncodingPlan
    intent: EncodingIntent
    process_id: int = 0
    handle: Optional[object] = None
    paused: bool = False
    paused_at_progress: Optional[float] = None
    last_progress: float = 0.0

    @property
    def has_live_handle(self) -> bool:
        if self.handle is None:
            return False
        try:
            return self.handle.poll() is None
        except Exception as e:
            logger.debug(f"Could not poll process of task {self.task_id}: {e}")
            return False


# Called with the task id and its record when a paused task has no process left
# to continue. Returns True if a new run was started.
Restarter = Callable[[str, ProcessRecord], bool]


class TaskProcessManager:
    """
    Tracks the encoder process of every active task and pauses/continues it.

    Args:
        suspender: The suspend strategy. Defaults to the one for this platform.
        restarter: Callback used by `resume_task` when the process is gone.
    """

    def __init__(
        self,
        suspender: Optional[ProcessSuspender] = None,
        restarter: Optional[Restarter] = None,
    ):
        self._suspender = suspender or default_suspender()
        self._restarter = restarter
        self._records: Dict[str, ProcessRecord] = {}
        logger.debug(f"Process manager using the '{self._suspender.name}' suspend strategy.")

    def set_restarter(self, restarter: Restarter):
        self._restarter = restarter

    # --- Registration ---
    def register_task(
        self,
        task_id: str,
        descriptor: MediaDescriptor,
        input_path: Path,
        output_path: Path,
        plan: EncodingPlan,
        intent: EncodingIntent,
    ) -> ProcessRecord:
        """
        Creates the record of a task, replacing any previous one.

        A previous record that is not paused is unusual (the task is being started
        twice); it is logged and replaced anyway.
        """
        existing = self._records.get(task_id)
        if existing is not None and not existing.paused:
            logger.warning(f"Task {task_id} already registered and not paused. Replacing its record.")

        record = ProcessRecord(
            task_id=task_id,
            descriptor=descriptor,
            input_path=input_path,
            output_path=output_path,
            plan=plan,
            intent=intent,
        )
        self._records[task_id] = record
        return record

    def attach_process(self, task_id: str, pid: int, handle):
        record = self._records.get(task_id)
        if record is None:
            logger.warning(f"Task {task_id} not found when attaching PID {pid}.")
            return
        record.process_id = pid
        record.handle = handle
        record.last_progress = 0.0
        logger.debug(f"Task {task_id} attached to PID {pid}.")

    def update_progress(self, task_id: str, percent: float):
        record = self._records.get(task_id)
        if record is not None:
            record.last_progress = percent

    # --- Pause / Resume ---
    def pause_task(self, task_id: str) -> bool:
        """
        Suspends the process of a task.

        Returns:
            False if the task is unknown, already paused, has no live process, or
            the suspend strategy failed (the paused mark is rolled back). True if
            the process is now suspended.
        """
        record = self._records.get(task_id)
        if record is None:
            logger.warning(f"Task {task_id} not found when pausing.")
            return False
        if record.paused:
            logger.warning(f"Task {task_id} is already paused.")
            return False
        if not record.has_live_handle:
            logger.warning(f"Task {task_id} has no running process to pause.")
            return False

        # Phase 1: tentative apply.
        record.paused = True
        record.paused_at_progress = record.last_progress

        # Phase 2: commit or roll back.
        try:
            suspended = self._suspender.suspend(record.process_id, record.handle)
        except Exception as e:
            logger.error(f"Suspend strategy raised for task {task_id}: {e}")
            suspended = False

        if not suspended:
            record.paused = False
            record.paused_at_progress = None
            logger.error(f"Failed to pause task {task_id} (PID {record.process_id}).")
            return False

        logger.info(f"Task {task_id} paused (PID {record.process_id}, progress {record.paused_at_progress:.1f}%).")
        return True

    def resume_task(self, task_id: str) -> bool:
        """
        Continues a paused task.

        With a live process the suspend strategy continues it. When the process
        never started or has exited, the job is started again from the beginning
        through the restarter; its progress starts over.

        Returns:
            False if the task is unknown, not paused, or continuing failed (the
            task then stays paused). True otherwise.
        """
        record = self._records.get(task_id)
        if record is None:
            logger.warning(f"Task {task_id} not found when resuming.")
            return False
        if not record.paused:
            logger.warning(f"Task {task_id} is not paused.")
            return False

        if not record.has_live_handle:
            return self._restart(record)

        try:
            resumed = self._suspender.resume(record.process_id, record.handle)
        except Exception as e:
            logger.error(f"Resume strategy raised for task {task_id}: {e}")
            resumed = False

        if not resumed:
            logger.error(f"Failed to resume task {task_id} (PID {record.process_id}).")
            return False

        record.paused = False
        record.paused_at_progress = None
        logger.info(f"Task {task_id} resumed (PID {record.process_id}).")
        return True

    def _restart(self, record: ProcessRecord) -> bool:
        task_id = record.task_id
        if self._restarter is None:
            logger.error(f"Task {task_id} has no process to resume and no restarter is configured.")
            return False

        logger.info(f"Task {task_id} process not found. Restarting from the beginning.")
        record.paused = False
        record.paused_at_progress = None
        record.handle = None
        record.process_id = 0
        try:
            restarted = self._restarter(task_id, record)
        except Exception as e:
            logger.error(f"Restart of task {task_id} raised: {e}")
            restarted = False

        if not restarted:
            record.paused = True
            return False
        return True

    # --- Queries ---
    def is_paused(self, task_id: str) -> bool:
        record = self._records.get(task_id)
        return record.paused if record else False

    def get_record(self, task_id: str) -> Optional[ProcessRecord]:
        return self._records.get(task_id)

    def active_task_ids(self) -> List[str]:
        return list(self._records)

    def cleanup(self, task_id: str):
        if self._records.pop(task_id, None) is not None:
            logger.debug(f"Task {task_id} cleaned up.")
