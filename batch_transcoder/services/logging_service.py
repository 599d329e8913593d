"""
This module provides classes for writing per-job log files.

It separates logging concerns into specific classes for handling errors (ErrorLog)
and successes (SuccessLog). Success logs are written in a machine-readable YAML
format, which makes a batch easy to audit afterwards, while error logs are in a
human-readable text format holding the encoder command and the tail of its stderr.

These files are separate from the real-time console logging done with loguru.
"""

import random
import string
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Union

import yaml
from loguru import logger

from ..config.common import RANDOM_TOKEN_LENGTH


def generate_random_string(length: int = RANDOM_TOKEN_LENGTH) -> str:
    """
    Generates a random string of uppercase letters and digits.

    Args:
        length: The desired length of the random string.

    Returns:
        A random alphanumeric string.
    """
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=length))


class Log:
    """
    A base class for all job log files.

    Its main purpose is to handle the basic setup of log file paths and directories.
    """

    # A decorative separator line used in text-based logs for better readability.
    linesep_marker: str = "=" * 50

    def __init__(self, log_base_path: Path):
        """
        Initializes the Log instance and makes sure the log directory exists.

        Args:
            log_base_path: The base path for logging. If it's a directory (or has no
                           suffix), log files will be created inside it. If it's a
                           file path, its parent will be used as the log directory.
        """
        self.log_file_path: Path  # To be defined by the subclass.
        if log_base_path.is_dir() or not log_base_path.suffix:
            self.log_dir: Path = log_base_path.resolve()
        else:
            self.log_dir: Path = log_base_path.parent.resolve()
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def write(self, log_content: Union[dict, list, str]):
        raise NotImplementedError("Subclasses must implement the write() method.")


class ErrorLog(Log):
    """
    Handles the writing of error logs to a plain text file.

    Each new error is appended to the log file, making it a chronological record
    of the failed encoder runs of a batch.
    """

    DEFAULT_ERROR_FILENAME = "error.txt"

    def __init__(self, error_log_dir: Path, filename: str = DEFAULT_ERROR_FILENAME):
        """
        Initializes the ErrorLog instance.

        Args:
            error_log_dir: The directory where the error log file will be stored.
            filename: The name of the error log file (defaults to "error.txt").
        """
        super().__init__(error_log_dir)
        self.log_file_path = self.log_dir / filename

    def write(self, *error_messages: str):
        """
        Appends one or more error messages to the log file, followed by a separator line.

        Args:
            *error_messages: The pieces of the error message, one per line.
        """
        if not error_messages:
            return

        content_to_write = "\n".join(error_messages) + "\n" + self.linesep_marker + "\n"

        try:
            with self.log_file_path.open("a", encoding="utf-8") as f:
                f.write(content_to_write)
        except Exception as e:
            # Fall back to the console logger so the message is not lost.
            logger.error(f"Failed to write to error log {self.log_file_path}: {e}")
            logger.error("Original error messages attempted to log:")
            for msg in error_messages:
                logger.error(f"  - {msg}")


class SuccessLog(Log):
    """
    Handles structured logging for completed jobs in YAML format.

    One instance is kept per session and output directory, so every completed
    job of a batch lands in the same dated file as a list entry.
    """

    def __init__(self, success_log_dir: Path, use_dated_filename: bool = True):
        """
        Initializes the SuccessLog instance.

        Args:
            success_log_dir: The directory where the success log file will be stored.
            use_dated_filename: If True, the log filename will include a date and a
                                random string so separate sessions never share a
                                file. If False, "transcode_log.yaml" is used.
        """
        super().__init__(success_log_dir)

        if use_dated_filename:
            date_str = datetime.now().strftime("%Y%m%d")
            random_str = generate_random_string()
            log_filename = f"log_{date_str}_{random_str}.yaml"
        else:
            log_filename = "transcode_log.yaml"

        self.log_file_path = self.log_dir / log_filename
        self.log_entries: List[Dict] = []

    def write(self, new_log_entry: dict):
        """
        Writes a new structured log entry to the YAML file.

        The existing file content is read first so the file always holds one
        valid YAML list; the new entry gets the next free index.

        Args:
            new_log_entry: The structured data for the completed job.
        """
        if not isinstance(new_log_entry, dict):
            logger.error("SuccessLog.write expects a dictionary as a log entry.")
            return

        # 1. Read existing entries from the file if it exists and is not empty.
        if self.log_file_path.is_file():
            try:
                with self.log_file_path.open("r", encoding="utf-8") as f:
                    loaded_entries = yaml.safe_load(f)
                if isinstance(loaded_entries, list):
                    self.log_entries = loaded_entries
                elif loaded_entries is None:
                    self.log_entries = []
                else:
                    logger.warning(
                        f"Success log {self.log_file_path} contained unexpected data. Starting a new log."
                    )
                    self.log_entries = []
            except Exception as e:
                logger.error(f"Error reading/parsing success log {self.log_file_path}: {e}. Starting a new log.")
                self.log_entries = []

        # 2. Add the new entry and assign it a new, unique index.
        current_max_index = max(
            (entry.get("index", 0) for entry in self.log_entries if isinstance(entry, dict)),
            default=0,
        )
        new_log_entry["index"] = current_max_index + 1
        self.log_entries.append(new_log_entry)

        # 3. Write the entire list of entries back to the YAML file.
        try:
            with self.log_file_path.open("w", encoding="utf-8") as f:
                yaml.dump(
                    self.log_entries,
                    f,
                    default_flow_style=False,
                    sort_keys=False,
                    allow_unicode=True,
                    indent=4,
                    width=220,
                )
        except Exception as e:
            logger.error(f"Failed to write to success log {self.log_file_path}: {e}")
