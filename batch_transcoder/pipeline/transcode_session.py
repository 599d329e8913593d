"""
Transcode Session.

The session wires the orchestration core together and is the only object a front
end talks to:

- it probes files and creates tasks (`add_file`, `remove_task`),
- it owns one `BatchScheduler` per task class and the shared `TaskProcessManager`,
- it owns the event queue that encoder threads write to, and drains it on the
  calling thread (`process_events`, `run_until_idle`), so every state change
  happens on that single control thread,
- it forwards task events to registered listeners (`subscribe`).

Queue admission and pause/resume never act on the same task at the same time:
only ready tasks are queued, and a paused task stays in its scheduler's running
set, so the scheduler cannot admit it a second time.
"""

import queue
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from .batch_scheduler import BatchScheduler
from ..config.common import (
    BATCH_STATUS_IDLE,
    FILE_NAME_MODE_CUSTOM,
    TASK_CLASS_AUDIO,
    TASK_CLASS_VIDEO,
    TASK_STATUS_COMPLETE,
    TASK_STATUS_ERROR,
    UserSettings,
)
from ..domain.events import ProcessEvent, TaskEvent
from ..domain.exceptions import TaskBusyException, UnknownTaskException
from ..domain.media import MediaDescriptor, probe_media
from ..domain.models import EncodingIntent, HardwareProfile, Task
from ..services.encoder_process import EncoderProcess
from ..services.hardware import detect_hardware_profile
from ..services.job_driver import JobDriver
from ..services.output_naming import build_output_path
from ..services.plan_resolver import output_container
from ..services.process_manager import TaskProcessManager
from ..services.suspender import ProcessSuspender

Listener = Callable[[TaskEvent], None]


class TranscodeSession:
    """
    A batch of transcode tasks and the machinery that runs them.

    Args:
        settings: The persisted user settings.
        hardware: The hardware profile; detected when not given.
        suspender: The suspend strategy; the platform default when not given.
        ffmpeg_cmd, ffprobe_cmd: The executables to run.
        process_factory: Builds encoder processes (replaced by fakes in tests).
        prober: Builds a MediaDescriptor from a path (replaced by fakes in tests).
    """

    def __init__(
        self,
        settings: Optional[UserSettings] = None,
        hardware: Optional[HardwareProfile] = None,
        suspender: Optional[ProcessSuspender] = None,
        ffmpeg_cmd: str = "ffmpeg",
        ffprobe_cmd: str = "ffprobe",
        process_factory: Callable[..., EncoderProcess] = EncoderProcess,
        prober: Callable[[Path, str], MediaDescriptor] = probe_media,
    ):
        self.settings = settings or UserSettings()
        self.hardware = hardware or detect_hardware_profile()
        self.ffprobe_cmd = ffprobe_cmd
        self._prober = prober
        self._listeners: List[Listener] = []
        self._tasks: Dict[str, Task] = {}
        self.events: "queue.Queue[ProcessEvent]" = queue.Queue()

        self.process_manager = TaskProcessManager(suspender)
        self.driver = JobDriver(
            self.process_manager,
            self.hardware,
            event_sink=self.events.put,
            emit=self._dispatch,
            on_task_finished=self._on_task_finished,
            ffmpeg_cmd=ffmpeg_cmd,
            process_factory=process_factory,
            write_job_logs=self.settings.write_job_logs,
        )
        self.schedulers: Dict[str, BatchScheduler] = {
            task_class: BatchScheduler(task_class, self._start_task, self.settings.parallel_tasks)
            for task_class in (TASK_CLASS_VIDEO, TASK_CLASS_AUDIO)
        }

    # ==================================================================================
    # Listeners
    # ==================================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers a task-event listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _dispatch(self, event: TaskEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Task event listener {listener!r} failed on '{event.kind}': {e}")

    # ==================================================================================
    # Tasks
    # ==================================================================================

    def default_intent(self) -> EncodingIntent:
        """An intent carrying the persisted hardware preference."""
        return EncodingIntent(codec_type=self.settings.codec_type, codec_method=self.settings.codec_method)

    def add_file(self, path: Path, intent: Optional[EncodingIntent] = None) -> Task:
        """
        Probes a file and creates a ready task for it.

        Raises:
            FileNotFoundError: If the file does not exist.
            MediaProbeException: If ffprobe cannot read it.
            UnsupportedMediaException: If it has no video or audio stream.
        """
        descriptor = self._prober(Path(path), self.ffprobe_cmd)
        intent = intent or self.default_intent()
        task_class = TASK_CLASS_AUDIO if descriptor.is_audio else TASK_CLASS_VIDEO

        if intent.custom_name_rule:
            name_mode, name_rule = FILE_NAME_MODE_CUSTOM, intent.custom_name_rule
        else:
            name_mode, name_rule = self.settings.file_name_mode, self.settings.custom_name_rule
        output_path = build_output_path(
            descriptor.path,
            output_container(descriptor, intent),
            self.settings.output_dir,
            name_mode,
            name_rule,
            taken=[task.output_path for task in self._tasks.values()],
        )

        task = Task(
            input_path=descriptor.path,
            output_path=output_path,
            descriptor=descriptor,
            intent=intent,
            task_class=task_class,
        )
        self._tasks[task.id] = task
        logger.info(f"Added {task_class} task {task.id}: {descriptor.path.name} -> {output_path.name}")
        return task

    def get_task(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise UnknownTaskException(f"Unknown task id: {task_id}") from None

    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks.values())

    def remove_task(self, task_id: str):
        """
        Removes a task from the session.

        A queued task is dropped from its queue. A paused task has its encoder
        stopped. A task that is processing and not paused cannot be removed.

        Raises:
            UnknownTaskException: If the id is unknown.
            TaskBusyException: If the task is processing and not paused.
        """
        task = self.get_task(task_id)
        if task.is_processing and not task.paused:
            raise TaskBusyException(f"Task {task_id} is encoding. Pause it before removing it.")

        scheduler = self.schedulers[task.task_class]
        if task.is_processing:
            self.driver.abandon(task_id)
            scheduler.task_finished(task_id)
        else:
            scheduler.remove(task_id)
        self.driver.forget(task_id)
        del self._tasks[task_id]
        logger.info(f"Removed task {task_id} ({task.input_path.name}).")

    # ==================================================================================
    # Batch Control
    # ==================================================================================

    def start_all(self, task_ids: Optional[Iterable[str]] = None):
        """
        Queues ready tasks (all of them, or the given ids) and starts admitting them.
        Tasks that are not ready are skipped.
        """
        if task_ids is None:
            selected = list(self._tasks.values())
        else:
            selected = [self.get_task(task_id) for task_id in task_ids]

        by_class: Dict[str, List[str]] = {TASK_CLASS_VIDEO: [], TASK_CLASS_AUDIO: []}
        for task in selected:
            if task.is_ready:
                by_class[task.task_class].append(task.id)
            else:
                logger.debug(f"Skipping task {task.id}: status '{task.status}'.")

        for task_class, ids in by_class.items():
            if ids:
                self.schedulers[task_class].start(ids)

    def stop_all(self):
        """Stops admitting queued tasks. Running encoders finish normally; queued tasks stay queued."""
        for scheduler in self.schedulers.values():
            scheduler.stop()

    def pause(self, task_id: str) -> bool:
        self.get_task(task_id)
        return self.driver.pause(task_id)

    def resume(self, task_id: str) -> bool:
        self.get_task(task_id)
        return self.driver.resume(task_id)

    def set_concurrency_limit(self, limit: int, task_class: Optional[str] = None):
        for name, scheduler in self.schedulers.items():
            if task_class is None or name == task_class:
                scheduler.set_concurrency_limit(limit)

    def _start_task(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None or not task.is_ready:
            return False
        return self.driver.start(task)

    def _on_task_finished(self, task: Task):
        self.schedulers[task.task_class].task_finished(task.id)

    # ==================================================================================
    # Event Loop
    # ==================================================================================

    def process_events(self, timeout: float = 0.0) -> int:
        """
        Handles queued process events on the calling thread.

        Waits up to `timeout` seconds for the first event, then drains whatever
        else is queued without waiting.

        Returns:
            The number of events handled.
        """
        handled = 0
        try:
            event = self.events.get(timeout=timeout) if timeout > 0 else self.events.get_nowait()
        except queue.Empty:
            return 0

        while True:
            self.driver.handle_event(event)
            handled += 1
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return handled

    @property
    def is_idle(self) -> bool:
        schedulers_idle = all(s.state.status == BATCH_STATUS_IDLE for s in self.schedulers.values())
        return schedulers_idle and not any(task.is_processing for task in self._tasks.values())

    def run_until_idle(self, poll_interval: float = 0.2, timeout: Optional[float] = None) -> bool:
        """
        Processes events until no task is queued or processing.

        Returns:
            True if the session became idle, False if the timeout expired first.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        while not self.is_idle:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            self.process_events(timeout=poll_interval)
        self.process_events()
        return True

    def shutdown(self):
        """Clears the queues and terminates every running encoder."""
        self.stop_all()
        for scheduler in self.schedulers.values():
            for task_id in scheduler.state.queue:
                scheduler.remove(task_id)
        self.driver.shutdown()

    # ==================================================================================
    # Reporting
    # ==================================================================================

    def aggregate_progress(self, task_class: Optional[str] = None) -> float:
        """
        Mean progress over the tasks of a batch: queued, processing and finished
        tasks count; ready tasks that were never queued do not.
        """
        considered = []
        for task in self._tasks.values():
            if task_class is not None and task.task_class != task_class:
                continue
            if task.is_finished:
                considered.append(100.0)
            elif task.is_processing or self.schedulers[task.task_class].is_scheduled(task.id):
                considered.append(task.progress)
        return sum(considered) / len(considered) if considered else 0.0

    def summary(self) -> Dict[str, int]:
        counts = {"total": len(self._tasks), TASK_STATUS_COMPLETE: 0, TASK_STATUS_ERROR: 0}
        for task in self._tasks.values():
            if task.status in counts:
                counts[task.status] += 1
        return counts
