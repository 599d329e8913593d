"""
Event types passed between the encoder processes, the Job Driver and the front end.

`ProcessEvent` subclasses are produced by the reader threads of an encoder process
and carry the id of the task they belong to. They are put on the session's queue
and handled on the control thread.

`TaskEvent` is what listeners registered on the session receive.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


# --- Process Events (encoder -> Job Driver) ---
@dataclass(frozen=True)
class ProcessEvent:
    """Base of all process events. `pid` identifies the run that produced the event."""

    task_id: str
    pid: int


@dataclass(frozen=True)
class ProcessStarted(ProcessEvent):
    command_line: str = ""


@dataclass(frozen=True)
class ProcessProgress(ProcessEvent):
    percent: float


@dataclass(frozen=True)
class ProcessEnded(ProcessEvent):
    return_code: int = 0


@dataclass(frozen=True)
class ProcessFailed(ProcessEvent):
    message: str
    return_code: Optional[int] = None
    stderr_tail: str = ""


@dataclass(frozen=True)
class ProcessDiagnostic(ProcessEvent):
    """A notable stderr line, e.g. the hardware encoder could not be opened."""

    message: str


# --- Task Events (Job Driver -> listeners) ---
TASK_EVENT_PENDING = "pending"
TASK_EVENT_STARTED = "started"
TASK_EVENT_PROGRESS = "progress"
TASK_EVENT_COMPLETE = "complete"
TASK_EVENT_ERROR = "error"
TASK_EVENT_FINISHED = "finished"
TASK_EVENT_PAUSED = "paused"
TASK_EVENT_RESUMED = "resumed"


@dataclass(frozen=True)
class TaskEvent:
    """
    A task-level notification.

    Attributes:
        kind: One of the TASK_EVENT_* names.
        task_id: The task the event is about.
        progress: Percent for "progress" events.
        output_path: Written file for "complete", and for "finished" on success.
        error: True on the "finished" event of a failed task.
        message: Error text for "error" events.
    """

    kind: str
    task_id: str
    progress: Optional[float] = None
    output_path: Optional[Path] = None
    error: bool = False
    message: Optional[str] = None
