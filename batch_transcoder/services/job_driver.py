"""
Job Driver.

Runs the state machine of each task:

    ready --start--> processing --pause--> processing (paused) --resume--> processing
    processing --end (normal)--> complete
    processing --end (error)--> error
    processing (paused) --end--> (suppressed)

`start` resolves the plan, registers the task with the `TaskProcessManager` and
launches the encoder. Everything the encoder reports afterwards arrives as a
`ProcessEvent` through `handle_event`, which is called on the control thread.
Before an event is dispatched it passes one guard: while the task is paused in
the process manager, progress, end and error events are dropped.

Task events are delivered to the `emit` callback in this order:
    start:       pending, started
    completion:  progress(100), complete, finished
    failure:     error, finished (error=True)
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

from loguru import logger

from .command_builder import build_transcode_command
from .encoder_process import EncoderProcess
from .logging_service import ErrorLog, SuccessLog
from .plan_resolver import resolve
from .process_manager import ProcessRecord, TaskProcessManager
from ..config.common import (
    ERROR_LOG_DIR_NAME,
    TASK_STATUS_COMPLETE,
    TASK_STATUS_ERROR,
    TASK_STATUS_PROCESSING,
)
from ..domain.events import (
    ProcessDiagnostic,
    ProcessEnded,
    ProcessEvent,
    ProcessFailed,
    ProcessProgress,
    ProcessStarted,
    TaskEvent,
    TASK_EVENT_COMPLETE,
    TASK_EVENT_ERROR,
    TASK_EVENT_FINISHED,
    TASK_EVENT_PAUSED,
    TASK_EVENT_PENDING,
    TASK_EVENT_PROGRESS,
    TASK_EVENT_RESUMED,
    TASK_EVENT_STARTED,
)
from ..domain.exceptions import EncoderLaunchException
from ..domain.models import HardwareProfile, Task
from ..utils.ffmpeg_utils import format_command
from ..utils.format_utils import format_timedelta, formatted_size


class JobDriver:
    """
    Starts jobs and turns process events into task state and task events.

    Args:
        process_manager: The store of process records; shared with the session.
        hardware: The hardware profile used for plan resolution.
        event_sink: Where encoder processes put their events (the session queue).
        emit: Receives every task event.
        on_task_finished: Called once when a task reaches complete or error.
        ffmpeg_cmd: The ffmpeg executable.
        process_factory: Builds the encoder process; replaced by fakes in tests.
        write_job_logs: Write YAML success and text error logs next to the output.
    """

    def __init__(
        self,
        process_manager: TaskProcessManager,
        hardware: HardwareProfile,
        event_sink: Callable[[ProcessEvent], None],
        emit: Callable[[TaskEvent], None],
        on_task_finished: Optional[Callable[[Task], None]] = None,
        ffmpeg_cmd: str = "ffmpeg",
        process_factory: Callable[..., EncoderProcess] = EncoderProcess,
        write_job_logs: bool = True,
    ):
        self.process_manager = process_manager
        self.hardware = hardware
        self.ffmpeg_cmd = ffmpeg_cmd
        self.write_job_logs = write_job_logs
        self._event_sink = event_sink
        self._emit = emit
        self._on_task_finished = on_task_finished
        self._process_factory = process_factory
        self._tasks: Dict[str, Task] = {}
        self._started_at: Dict[str, datetime] = {}
        self._commands: Dict[str, List[str]] = {}
        self._success_logs: Dict[Path, SuccessLog] = {}
        self.process_manager.set_restarter(self._restart)

    # ==================================================================================
    # Start
    # ==================================================================================

    def start(self, task: Task) -> bool:
        """
        Moves a ready task to processing and launches its encoder.

        A launch failure (e.g. ffmpeg missing) is handled like any encoder failure:
        the task ends in the error state and its finished event is emitted.

        Returns:
            True if an encoder process is running for the task.
        """
        if not task.is_ready:
            logger.warning(f"Task {task.id} is '{task.status}', not ready. Not starting it.")
            return False

        task.intent = task.intent if task.intent.is_frozen else task.intent.freeze()
        task.plan = resolve(task.descriptor, task.intent, self.hardware)
        task.status = TASK_STATUS_PROCESSING
        task.paused = False
        task.progress = 0.0
        task.error_message = None
        self._tasks[task.id] = task

        record = self.process_manager.register_task(
            task.id, task.descriptor, task.input_path, task.output_path, task.plan, task.intent
        )
        self._emit(TaskEvent(TASK_EVENT_PENDING, task.id))

        if not self._launch(task, record):
            return False
        self._emit(TaskEvent(TASK_EVENT_STARTED, task.id))
        return True

    def _launch(self, task: Task, record: ProcessRecord) -> bool:
        command = build_transcode_command(self.ffmpeg_cmd, record.plan, record.input_path, record.output_path)
        self._commands[task.id] = command
        self._started_at[task.id] = datetime.now()
        process = self._process_factory(task.id, command, record.descriptor.duration, self._event_sink)
        try:
            record.output_path.parent.mkdir(parents=True, exist_ok=True)
            pid = process.start()
        except (EncoderLaunchException, OSError) as e:
            logger.error(f"Could not start encoder for {task.input_path.name}: {e}")
            self._fail(task, str(e))
            return False

        self.process_manager.attach_process(task.id, pid, process)
        mode = "stream copy" if record.plan.stream_copy else (record.plan.video_encoder or record.plan.audio_codec)
        logger.info(f"Encoding {task.input_path.name} -> {record.output_path.name} ({mode}, PID {pid})")
        return True

    def _restart(self, task_id: str, record: ProcessRecord) -> bool:
        """Starts a paused task again from the beginning when its process is gone."""
        task = self._tasks.get(task_id)
        if task is None or not task.is_processing:
            logger.warning(f"Cannot restart task {task_id}: it is not processing.")
            return False
        task.progress = 0.0
        return self._launch(task, record)

    # ==================================================================================
    # Process Events
    # ==================================================================================

    def handle_event(self, event: ProcessEvent):
        """
        Applies one process event to its task.

        Events of tasks that are no longer processing, and events of an earlier
        run of a restarted task, are dropped. Diagnostics are only logged.
        While the task is paused, progress, end and error events are suppressed.
        """
        task = self._tasks.get(event.task_id)
        record = self.process_manager.get_record(event.task_id)
        if task is None or record is None or not task.is_processing:
            logger.trace(f"Dropping {type(event).__name__} for inactive task {event.task_id}.")
            return
        if event.pid != record.process_id:
            logger.trace(f"Dropping {type(event).__name__} from earlier run (PID {event.pid}) of task {task.id}.")
            return

        if isinstance(event, ProcessDiagnostic):
            logger.warning(f"[{task.input_path.name}] Encoder reported: {event.message}")
            return

        if self._is_suppressed(task):
            logger.debug(f"Task {task.id} is paused. Suppressed {type(event).__name__}.")
            return

        if isinstance(event, ProcessStarted):
            logger.debug(f"Task {task.id} encoder running: {event.command_line}")
        elif isinstance(event, ProcessProgress):
            self._on_progress(task, event.percent)
        elif isinstance(event, ProcessEnded):
            self._complete(task)
        elif isinstance(event, ProcessFailed):
            self._fail(task, event.message, event.stderr_tail, event.return_code)
        else:
            logger.warning(f"Unknown process event {event!r}")

    def _is_suppressed(self, task: Task) -> bool:
        return self.process_manager.is_paused(task.id)

    def _on_progress(self, task: Task, percent: float):
        percent = max(0.0, min(100.0, percent))
        if percent <= task.progress:
            return
        task.progress = percent
        self.process_manager.update_progress(task.id, percent)
        self._emit(TaskEvent(TASK_EVENT_PROGRESS, task.id, progress=percent))

    def _complete(self, task: Task):
        task.progress = 100.0
        task.status = TASK_STATUS_COMPLETE
        task.paused = False
        self._emit(TaskEvent(TASK_EVENT_PROGRESS, task.id, progress=100.0))
        self._emit(TaskEvent(TASK_EVENT_COMPLETE, task.id, output_path=task.output_path))
        self._emit(TaskEvent(TASK_EVENT_FINISHED, task.id, output_path=task.output_path, error=False))

        elapsed = datetime.now() - self._started_at.get(task.id, datetime.now())
        logger.success(f"Completed {task.input_path.name} -> {task.output_path} in {format_timedelta(elapsed)}")
        if self.write_job_logs:
            try:
                self._write_success_log(task, elapsed)
            except OSError as e:
                logger.error(f"Could not write the success log for {task.input_path.name}: {e}")
        self._finish(task)

    def _fail(self, task: Task, message: str, stderr_tail: str = "", return_code: Optional[int] = None):
        task.status = TASK_STATUS_ERROR
        task.paused = False
        task.error_message = message
        self._emit(TaskEvent(TASK_EVENT_ERROR, task.id, message=message))
        self._emit(TaskEvent(TASK_EVENT_FINISHED, task.id, output_path=None, error=True, message=message))

        logger.error(f"Failed {task.input_path.name}: {message}")
        if self.write_job_logs:
            try:
                self._write_error_log(task, message, stderr_tail, return_code)
            except OSError as e:
                logger.error(f"Could not write the error log for {task.input_path.name}: {e}")
        self._finish(task)

    def _finish(self, task: Task):
        self.process_manager.cleanup(task.id)
        self._started_at.pop(task.id, None)
        self._commands.pop(task.id, None)
        if self._on_task_finished:
            self._on_task_finished(task)

    # ==================================================================================
    # Pause / Resume
    # ==================================================================================

    def pause(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None or not task.is_processing or task.paused:
            logger.warning(f"Task {task_id} cannot be paused in its current state.")
            return False
        if not self.process_manager.pause_task(task_id):
            return False
        task.paused = True
        self._emit(TaskEvent(TASK_EVENT_PAUSED, task_id, progress=task.progress))
        return True

    def resume(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None or not task.paused:
            logger.warning(f"Task {task_id} is not paused.")
            return False
        resumed = self.process_manager.resume_task(task_id)
        if task.is_finished:
            # A restart that failed to launch has already ended the task.
            task.paused = False
            return False
        if not resumed:
            return False
        task.paused = False
        self._emit(TaskEvent(TASK_EVENT_RESUMED, task_id, progress=task.progress))
        return True

    def abandon(self, task_id: str):
        """
        Stops the encoder of a paused task that is being removed and drops its record.
        No task events are emitted; events the process still produces are dropped.
        """
        record = self.process_manager.get_record(task_id)
        if record is not None and record.has_live_handle:
            if record.paused:
                self.process_manager.resume_task(task_id)
            logger.info(f"Stopping encoder of removed task {task_id} (PID {record.process_id}).")
            record.handle.terminate()
        self.process_manager.cleanup(task_id)
        self._started_at.pop(task_id, None)
        self._commands.pop(task_id, None)
        task = self._tasks.get(task_id)
        if task is not None:
            task.paused = False

    def forget(self, task_id: str):
        """Drops a task that was removed from the session."""
        self._tasks.pop(task_id, None)

    def shutdown(self):
        """
        Terminates every encoder still running. Used when the front end exits.

        Paused processes are continued first so they can act on the termination.
        """
        for task_id in self.process_manager.active_task_ids():
            record = self.process_manager.get_record(task_id)
            if record is None or record.handle is None:
                continue
            if record.paused and record.has_live_handle:
                self.process_manager.resume_task(task_id)
            logger.info(f"Stopping encoder of task {task_id} (PID {record.process_id}).")
            record.handle.terminate()

    # ==================================================================================
    # Job Logs
    # ==================================================================================

    def _write_success_log(self, task: Task, elapsed):
        log_dir = task.output_path.parent
        success_log = self._success_logs.get(log_dir)
        if success_log is None:
            success_log = self._success_logs[log_dir] = SuccessLog(log_dir)

        input_size = task.input_path.stat().st_size if task.input_path.exists() else 0
        output_size = task.output_path.stat().st_size if task.output_path.exists() else 0
        plan = task.plan
        success_log.write(
            {
                "input_file": str(task.input_path),
                "output_file": str(task.output_path),
                "task_class": task.task_class,
                "video_encoder": plan.video_encoder if plan else None,
                "audio_codec": plan.audio_codec if plan else None,
                "stream_copy": bool(plan and plan.stream_copy),
                "hardware": bool(plan and plan.hardware),
                "input_size": formatted_size(input_size),
                "output_size": formatted_size(output_size),
                "source_duration": format_timedelta(timedelta(seconds=task.descriptor.duration)),
                "elapsed": format_timedelta(elapsed),
                "ended_datetime": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            }
        )

    def _write_error_log(self, task: Task, message: str, stderr_tail: str, return_code: Optional[int]):
        command = self._commands.get(task.id)
        ErrorLog(task.output_path.parent / ERROR_LOG_DIR_NAME).write(
            f"Encoding failed for: {task.input_path}",
            f"Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Command: {format_command(command) if command else 'N/A'}",
            f"Return code: {return_code if return_code is not None else 'N/A'}",
            f"Message: {message}",
            "Stderr (tail):",
            stderr_tail or "(empty)",
        )
