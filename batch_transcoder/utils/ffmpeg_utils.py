"""
This module provides utility functions related to FFmpeg and other external tools.
It includes a function for running short-lived helper commands (PowerShell, lspci,
nvidia-smi, `ffmpeg -version`) and the parsers for ffmpeg's machine-readable
`-progress` output.
"""

import os
import re
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from ..services.logging_service import ErrorLog


# Keys ffmpeg writes to the -progress stream that carry the current output time.
# out_time_ms is reported in microseconds despite its name.
PROGRESS_TIME_KEYS = ("out_time_us", "out_time_ms", "out_time")
_PROGRESS_KV = re.compile(r"^([a-z_]+)=(.*)$")
_PROGRESS_TIMECODE = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2}(?:\.\d+)?)$")


def format_command(cmd_list: List[str]) -> str:
    """
    Builds a display-friendly, correctly quoted version of a command.

    Args:
        cmd_list: The command as a list of arguments.

    Returns:
        The command as one string, quoted for the current platform.
    """
    try:
        # Use platform-specific methods to correctly quote and join the command.
        if os.name == "nt":
            return subprocess.list2cmdline(cmd_list)
        return shlex.join(cmd_list)
    except Exception as e:
        logger.warning(f"Could not format command list for display: {e}. Using simple join.")
        return " ".join(str(part) for part in cmd_list)


def run_cmd(
    cmd_parts: Union[str, List[str]],
    src_file_for_log: Path = Path(),
    error_log_dir_for_run_cmd: Optional[Path] = None,
    show_cmd: bool = False,
    timeout: Optional[float] = None,
) -> Optional[subprocess.CompletedProcess]:
    """
    Executes an external command safely and captures its output.

    This is a wrapper around Python's `subprocess.run` that adds enhanced logging,
    error handling, and flexibility. It can accept a command as either a single
    string or a list of arguments. It is meant for short helper commands; encoder
    runs go through `EncoderProcess`, which streams progress instead.

    Args:
        cmd_parts: The command to execute, as a single string or a list of strings.
                   A list is preferred for safety (avoids shell injection).
        src_file_for_log: The source file being processed, used for logging context
                          in case of an error.
        error_log_dir_for_run_cmd: The directory where an error log should be written
                                   if the command fails to run.
        show_cmd: If True, the command will be logged at the DEBUG level before execution.
        timeout: Seconds to wait before giving up on the command.

    Returns:
        A `subprocess.CompletedProcess` object when the command ran (whatever its
        return code). Returns `None` if the command could not be run at all
        (e.g., `FileNotFoundError` or a timeout).
    """
    cmd_list: List[str]

    # --- Step 1: Normalize the input command to a list of strings ---
    if isinstance(cmd_parts, str):
        try:
            cmd_list = shlex.split(cmd_parts)
        except ValueError as e:
            logger.error(f"Error splitting command string with shlex: '{cmd_parts}'. Error: {e}")
            return None
    elif isinstance(cmd_parts, list):
        cmd_list = [str(part) for part in cmd_parts]
    else:
        logger.error(f"run_cmd expects a command string or list, but received {type(cmd_parts)}.")
        return None

    if not cmd_list:
        logger.error("run_cmd received an empty command list.")
        return None

    # --- Step 2: Create a display-friendly version of the command for logging ---
    display_cmd_str = format_command(cmd_list)
    if show_cmd:
        logger.debug(f"Executing command: {display_cmd_str}")

    # --- Step 3: Execute the command and handle potential errors ---
    try:
        result = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            shell=False,
            timeout=timeout,
        )

        if result.stdout and len(result.stdout) > 500:
            logger.trace(f"Command stdout (truncated): {result.stdout[:500]}...")
        elif result.stdout:
            logger.trace(f"Command stdout: {result.stdout}")

        # Distinguish between error output and informational warnings on stderr.
        if result.stderr and result.returncode != 0:
            logger.debug(f"Command stderr (error, rc={result.returncode}): {result.stderr}")
        elif result.stderr:
            logger.trace(f"Command stderr (non-error, rc={result.returncode}): {result.stderr}")

        return result
    except FileNotFoundError:
        logger.error(
            f"Error: Command not found (e.g., '{cmd_list[0]}'). Ensure it's in your system's PATH or configured correctly."
        )
        if error_log_dir_for_run_cmd and src_file_for_log.name:
            ErrorLog(error_log_dir_for_run_cmd).write(
                f"Command execution error for: {src_file_for_log.name}",
                f"Command: {display_cmd_str}",
                "Error: Command not found (FileNotFoundError).",
            )
        return None
    except subprocess.TimeoutExpired:
        logger.error(f"Error: Command timed out after {timeout}s. Command: {display_cmd_str}")
        if error_log_dir_for_run_cmd and src_file_for_log.name:
            ErrorLog(error_log_dir_for_run_cmd).write(
                f"Command execution error for: {src_file_for_log.name}",
                f"Command: {display_cmd_str}",
                "Error: Command timed out.",
            )
        return None
    except Exception as e:
        logger.error(f"An unexpected error occurred while executing '{display_cmd_str}': {e}")
        if error_log_dir_for_run_cmd and src_file_for_log.name:
            ErrorLog(error_log_dir_for_run_cmd).write(
                f"Command execution error for: {src_file_for_log.name}",
                f"Command: {display_cmd_str}",
                f"Exception: {type(e).__name__} - {e}",
            )
        return None


# --- Progress Parsing ---
def parse_progress_line(line: str) -> Optional[float]:
    """
    Extracts the current output time from one line of ffmpeg's `-progress` stream.

    ffmpeg writes `key=value` lines. `out_time_us` and `out_time_ms` both hold
    microseconds; `out_time` holds a `HH:MM:SS.micro` timecode.

    Args:
        line: A single line from the progress stream.

    Returns:
        The output position in seconds, or None if the line carries no time
        (or ffmpeg reported "N/A").
    """
    match = _PROGRESS_KV.match(line.strip())
    if not match:
        return None
    key, value = match.group(1), match.group(2).strip()
    if key not in PROGRESS_TIME_KEYS or not value or value == "N/A":
        return None

    if key in ("out_time_us", "out_time_ms"):
        try:
            return int(value) / 1_000_000
        except ValueError:
            return None

    timecode = _PROGRESS_TIMECODE.match(value)
    if not timecode:
        return None
    hours, minutes, seconds = timecode.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def progress_percent(position_seconds: float, duration_seconds: float) -> Optional[float]:
    """
    Converts an output position into a percentage of the source duration.

    Returns None when the duration is unknown, otherwise a value clamped to [0, 100].
    """
    if duration_seconds <= 0:
        return None
    percent = position_seconds / duration_seconds * 100.0
    return max(0.0, min(100.0, percent))
