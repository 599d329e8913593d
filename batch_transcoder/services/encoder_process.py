"""
Wraps one running ffmpeg process.

`EncoderProcess` starts ffmpeg with `subprocess.Popen` and watches it from
background threads:

- the stdout reader parses the `-progress pipe:1` stream into percentages,
- the stderr reader keeps the last lines for error reports and spots messages
  that mean the hardware encoder could not be used,
- the monitor thread waits for both readers and the exit code, then reports
  the end of the run.

The threads never touch task state. Everything they observe is turned into a
`ProcessEvent` and handed to the event sink (normally `queue.Queue.put` of the
session), so all state changes happen on the control thread.
"""

import collections
import subprocess
import threading
from typing import Callable, Deque, List, Optional, Set

from loguru import logger

from ..config.common import STDERR_TAIL_LINES
from ..config.video import HARDWARE_FALLBACK_MARKERS
from ..domain.events import (
    ProcessDiagnostic,
    ProcessEnded,
    ProcessEvent,
    ProcessFailed,
    ProcessProgress,
    ProcessStarted,
)
from ..domain.exceptions import EncoderLaunchException
from ..utils.ffmpeg_utils import format_command, parse_progress_line, progress_percent

EventSink = Callable[[ProcessEvent], None]


class EncoderProcess:
    """
    A single ffmpeg run for one task.

    Attributes:
        task_id: The task the run belongs to; stamped on every event.
        command: The full ffmpeg command.
        duration: Source duration in seconds, used to turn output time into percent.
    """

    def __init__(
        self,
        task_id: str,
        command: List[str],
        duration: float,
        event_sink: EventSink,
        popen_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.task_id = task_id
        self.command = command
        self.duration = duration
        self._event_sink = event_sink
        self._popen_factory = popen_factory
        self._process: Optional[subprocess.Popen] = None
        self._stderr_tail: Deque[str] = collections.deque(maxlen=STDERR_TAIL_LINES)
        self._reported_markers: Set[str] = set()
        self._last_percent = 0.0
        self._monitor_thread: Optional[threading.Thread] = None

    # --- Lifecycle ---
    def start(self) -> int:
        """
        Launches ffmpeg and the watcher threads.

        Returns:
            The OS process id.

        Raises:
            EncoderLaunchException: If the executable cannot be started.
        """
        command_line = format_command(self.command)
        logger.debug(f"[{self.task_id}] Launching: {command_line}")
        try:
            self._process = self._popen_factory(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except FileNotFoundError as e:
            raise EncoderLaunchException(f"Encoder executable not found: '{self.command[0]}'") from e
        except OSError as e:
            raise EncoderLaunchException(f"Could not start encoder: {e}") from e

        pid = self._process.pid
        self._emit(ProcessStarted(self.task_id, pid, command_line=command_line))

        self._monitor_thread = threading.Thread(
            target=self._monitor, name=f"encoder-{self.task_id}", daemon=True
        )
        self._monitor_thread.start()
        return pid

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    def poll(self) -> Optional[int]:
        """Exit code, or None while running. A process that never started counts as exited."""
        if self._process is None:
            return -1
        return self._process.poll()

    def is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def send_signal(self, sig: int):
        if self._process is None:
            raise ProcessLookupError(f"Encoder for task {self.task_id} was never started")
        self._process.send_signal(sig)

    def terminate(self):
        """Stops the process if it is still running. Used only on shutdown."""
        if self.is_alive():
            logger.debug(f"[{self.task_id}] Terminating encoder (PID {self.pid}).")
            self._process.terminate()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the monitor thread has reported the end. True if it has."""
        if self._monitor_thread is None:
            return True
        self._monitor_thread.join(timeout)
        return not self._monitor_thread.is_alive()

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    # --- Watchers ---
    def _emit(self, event: ProcessEvent):
        try:
            self._event_sink(event)
        except Exception as e:
            logger.error(f"[{self.task_id}] Event sink rejected {type(event).__name__}: {e}")

    def _read_stdout(self):
        for line in self._process.stdout:
            position = parse_progress_line(line)
            if position is None:
                continue
            percent = progress_percent(position, self.duration)
            if percent is None or percent <= self._last_percent:
                continue
            self._last_percent = percent
            self._emit(ProcessProgress(self.task_id, self.pid, percent=percent))

    def _read_stderr(self):
        for line in self._process.stderr:
            line = line.rstrip()
            if not line:
                continue
            self._stderr_tail.append(line)
            lowered = line.lower()
            for marker in HARDWARE_FALLBACK_MARKERS:
                if marker in lowered and marker not in self._reported_markers:
                    self._reported_markers.add(marker)
                    self._emit(ProcessDiagnostic(self.task_id, self.pid, message=line))

    def _monitor(self):
        readers = [
            threading.Thread(target=self._read_stdout, name=f"encoder-{self.task_id}-stdout", daemon=True),
            threading.Thread(target=self._read_stderr, name=f"encoder-{self.task_id}-stderr", daemon=True),
        ]
        for reader in readers:
            reader.start()
        for reader in readers:
            reader.join()

        return_code = self._process.wait()
        if return_code == 0:
            self._emit(ProcessEnded(self.task_id, self.pid, return_code=0))
            return

        last_line = self._stderr_tail[-1] if self._stderr_tail else "no error output"
        self._emit(
            ProcessFailed(
                self.task_id,
                self.pid,
                message=f"ffmpeg exited with code {return_code}: {last_line}",
                return_code=return_code,
                stderr_tail=self.stderr_tail,
            )
        )
