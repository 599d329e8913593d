"""
Common configuration settings used throughout the application.

This module contains globally shared configuration settings and constants that are
used across the Batch Transcoder. It centralizes parameters for logging, job and
batch status tracking, and the persisted user settings the orchestration core reads.
It also handles the loading of user-specific configuration from an external YAML
file, allowing for easy customization without modifying the source code.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from loguru import logger

# --- User-Defined Configuration ---
# Settings are loaded from a 'config.user.yaml' file located at the project root.
# The file is read-only from the application's point of view.

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = PROJECT_ROOT / "config.user.yaml"


# --- Logging Configuration ---

# The format string for the Loguru logger. It defines the structure and appearance
# of log messages, including timestamp, level, module name, and the message itself.
LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

# The length of the random string appended to dated success log files and to
# custom output names using the {random} placeholder.
RANDOM_TOKEN_LENGTH = 8

# Name of the directory (inside the output directory) that receives error logs
# for failed encoder runs.
ERROR_LOG_DIR_NAME = "transcode_error"

# Number of trailing stderr lines kept from an encoder process for error reports.
STDERR_TAIL_LINES = 30


# --- Output Settings Defaults ---

DEFAULT_OUTPUT_DIR = Path.home() / "Videos" / "batch_transcoder"
DEFAULT_PARALLEL_TASKS = 2
FILE_NAME_MODE_ORIGIN = "origin"
FILE_NAME_MODE_CUSTOM = "custom"
CODEC_TYPE_CPU = "CPU"
CODEC_TYPE_GPU = "GPU"


# --- Task Status Constants ---
# A task moves ready -> processing -> complete | error. "paused" is an orthogonal
# flag on a processing task, not a status of its own.

TASK_STATUS_READY = "ready"
TASK_STATUS_PROCESSING = "processing"
TASK_STATUS_COMPLETE = "complete"
TASK_STATUS_ERROR = "error"


# --- Batch Status Constants ---

BATCH_STATUS_IDLE = "idle"
BATCH_STATUS_RUNNING = "running"
BATCH_STATUS_STOPPING = "stopping"

TASK_CLASS_VIDEO = "video"
TASK_CLASS_AUDIO = "audio"


@dataclass
class UserSettings:
    """
    The persisted settings the orchestration core reads.

    Attributes:
        output_dir: Directory where converted files are written.
        parallel_tasks: Upper bound of encoder processes running at once, per task class.
        codec_type: "CPU" or "GPU"; the hardware-acceleration preference.
        codec_method: Vendor method string used when codec_type is "GPU"
                      (e.g. "nvenc", "amf", "qsv", "videotoolbox" or a vendor name).
        file_name_mode: "origin" keeps the source stem, "custom" applies custom_name_rule.
        custom_name_rule: Template with {name}, {ext}, {time} and {random} placeholders.
        ffmpeg_dir: Directory holding the ffmpeg/ffprobe executables, or None for PATH.
        write_job_logs: Whether success/error job logs are written next to the output.
    """

    output_dir: Path = DEFAULT_OUTPUT_DIR
    parallel_tasks: int = DEFAULT_PARALLEL_TASKS
    codec_type: str = CODEC_TYPE_CPU
    codec_method: str = ""
    file_name_mode: str = FILE_NAME_MODE_ORIGIN
    custom_name_rule: str = ""
    ffmpeg_dir: Optional[Path] = None
    write_job_logs: bool = True

    @property
    def gpu_enabled(self) -> bool:
        return self.codec_type.upper() == CODEC_TYPE_GPU


def load_user_settings(config_path: Path = USER_CONFIG_PATH) -> UserSettings:
    """
    Loads UserSettings from a YAML file.

    The expected layout is:

        paths:
          ffmpeg_dir: /opt/ffmpeg/bin
        output:
          output_dir: /data/converted
          parallel_tasks: 3
          codec_type: GPU
          codec_method: nvenc
          file_name_mode: custom
          custom_name_rule: "{name}-{time}-{random}{ext}"
          write_job_logs: true

    Any missing key keeps its default. A missing, empty or unreadable file logs a
    message and returns the defaults; it never raises.

    Args:
        config_path: Path to the YAML file.

    Returns:
        The loaded settings.
    """
    settings = UserSettings()
    if not config_path.is_file():
        logger.debug(f"User config '{config_path}' not found. Using default settings.")
        return settings

    try:
        with config_path.open("r", encoding="utf-8") as f:
            user_config = yaml.safe_load(f) or {}
    except Exception as e:
        logger.warning(f"Could not load or parse '{config_path}': {e}")
        return settings

    if not isinstance(user_config, dict):
        logger.warning(f"Ignoring '{config_path}': top level is not a mapping.")
        return settings

    paths_config = user_config.get("paths") or {}
    ffmpeg_dir_str = paths_config.get("ffmpeg_dir")
    if ffmpeg_dir_str:
        settings.ffmpeg_dir = Path(ffmpeg_dir_str)

    output_config: dict[str, Any] = user_config.get("output") or {}
    if output_config.get("output_dir"):
        settings.output_dir = Path(output_config["output_dir"]).expanduser()
    if output_config.get("parallel_tasks") is not None:
        try:
            settings.parallel_tasks = int(output_config["parallel_tasks"])
        except (TypeError, ValueError):
            logger.warning(
                f"Invalid parallel_tasks value {output_config['parallel_tasks']!r}; "
                f"keeping {settings.parallel_tasks}."
            )
    if output_config.get("codec_type"):
        settings.codec_type = str(output_config["codec_type"])
    if output_config.get("codec_method"):
        settings.codec_method = str(output_config["codec_method"])
    if output_config.get("file_name_mode"):
        settings.file_name_mode = str(output_config["file_name_mode"])
    if output_config.get("custom_name_rule"):
        settings.custom_name_rule = str(output_config["custom_name_rule"])
    if output_config.get("write_job_logs") is not None:
        settings.write_job_logs = bool(output_config["write_job_logs"])

    logger.debug(f"Loaded user settings from '{config_path}': {settings}")
    return settings
