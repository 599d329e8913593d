"""
Suspend strategies used to pause and continue a running encoder process.

The process manager only knows the `ProcessSuspender` interface. The concrete
strategy is picked once at startup by `default_suspender()`:

- POSIX (Linux, macOS): `SIGSTOP` / `SIGCONT` sent to the process.
- Windows: PowerShell's `Suspend-Process` / `Resume-Process`.

Every strategy reports failure by returning False. None of them raise, and none
of them ever kill the process.
"""

import signal
import sys

from loguru import logger

from ..utils.ffmpeg_utils import run_cmd

# PowerShell may take a few seconds to start on a cold machine.
POWERSHELL_TIMEOUT_SECONDS = 30


class ProcessSuspender:
    """Interface for freezing and thawing an OS process."""

    name = "base"

    def suspend(self, pid: int, handle) -> bool:
        raise NotImplementedError

    def resume(self, pid: int, handle) -> bool:
        raise NotImplementedError


class SignalSuspender(ProcessSuspender):
    """Pauses with SIGSTOP and continues with SIGCONT."""

    name = "signal"

    def _send(self, handle, signal_name: str, pid: int) -> bool:
        try:
            handle.send_signal(getattr(signal, signal_name))
            return True
        except Exception as e:
            logger.error(f"Failed to send {signal_name} to PID {pid}: {e}")
            return False

    def suspend(self, pid: int, handle) -> bool:
        return self._send(handle, "SIGSTOP", pid)

    def resume(self, pid: int, handle) -> bool:
        return self._send(handle, "SIGCONT", pid)


class PowerShellSuspender(ProcessSuspender):
    """
    Pauses and continues a process through PowerShell.

    The command runs with -NoProfile and -NonInteractive to keep the startup
    delay short, and with -ErrorAction Stop so a failure gives a non-zero exit code.
    """

    name = "powershell"

    def __init__(self, powershell_cmd: str = "powershell"):
        self.powershell_cmd = powershell_cmd

    def _run(self, cmdlet: str, pid: int) -> bool:
        result = run_cmd(
            [
                self.powershell_cmd,
                "-NoProfile",
                "-NonInteractive",
                "-Command",
                f"{cmdlet} -Id {pid} -ErrorAction Stop",
            ],
            timeout=POWERSHELL_TIMEOUT_SECONDS,
        )
        if result is None:
            return False
        if result.returncode != 0:
            logger.error(f"{cmdlet} failed for PID {pid} (rc={result.returncode}).")
            logger.error(f"PowerShell stderr: {result.stderr.strip()}")
            return False
        return True

    def suspend(self, pid: int, handle) -> bool:
        return self._run("Suspend-Process", pid)

    def resume(self, pid: int, handle) -> bool:
        return self._run("Resume-Process", pid)


def default_suspender(platform: str = sys.platform) -> ProcessSuspender:
    """Picks the suspend strategy for the running platform."""
    if platform == "win32":
        return PowerShellSuspender()
    return SignalSuspender()
