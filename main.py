"""
Main entry point for the Batch Transcoder application.

This script initializes the application, parses command-line arguments, builds a
transcode session from the user settings and the flags, adds every discovered
media file to it and runs the batch until all tasks have finished.
"""

import sys
from pathlib import Path

from loguru import logger

from batch_transcoder.cli import apply_args_to_settings, get_args, intent_from_args
from batch_transcoder.config.common import LOGGER_FORMAT, load_user_settings
from batch_transcoder.domain.events import TaskEvent, TASK_EVENT_PROGRESS
from batch_transcoder.domain.exceptions import MediaFileException
from batch_transcoder.pipeline.transcode_session import TranscodeSession
from batch_transcoder.services.file_discovery import discover_media_files
from batch_transcoder.utils.binaries import Binaries


# Configure the logger for initial setup.
# The level is overridden once the command-line arguments are parsed.
logger.remove()
logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)


_progress_buckets = {}


def _log_progress(event: TaskEvent):
    # Only every 10% to keep the console readable.
    if event.kind == TASK_EVENT_PROGRESS and event.progress is not None:
        bucket = int(event.progress // 10)
        if _progress_buckets.get(event.task_id) != bucket:
            _progress_buckets[event.task_id] = bucket
            logger.info(f"Task {event.task_id}: {event.progress:.0f}%")


def main(argv=None) -> int:
    """
    Main function to start the batch.

    This function performs the following steps:
    1. Parses command-line arguments and configures the logger.
    2. Loads the user settings and applies the command-line overrides.
    3. Verifies that FFmpeg can be executed.
    4. Discovers the input files and adds them to a session.
    5. Starts every task and processes events until the batch is idle.

    Returns:
        The process exit code: 0 when every task completed, 1 otherwise.
    """
    args = get_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level, format=LOGGER_FORMAT)
    logger.debug(f"Parsed arguments: {args}")

    settings = apply_args_to_settings(args, load_user_settings(args.config))
    binaries = Binaries(settings.ffmpeg_dir)
    if not binaries.verify_ffmpeg():
        return 1

    inputs = list(args.inputs)
    if not inputs:
        target_dir = (args.target_dir or Path.cwd()).resolve()
        logger.info(f"No inputs given, scanning: {target_dir}")
        inputs = [target_dir]

    media_files = discover_media_files(
        inputs, recursive=not args.no_recursive, exclude_dirs=[settings.output_dir]
    )
    if not media_files:
        logger.warning("No media files found. Nothing to do.")
        return 0

    session = TranscodeSession(settings, ffmpeg_cmd=binaries.ffmpeg, ffprobe_cmd=binaries.ffprobe)
    session.subscribe(_log_progress)
    intent = intent_from_args(args, settings)

    for media_file in media_files:
        try:
            session.add_file(media_file, intent)
        except (MediaFileException, FileNotFoundError) as e:
            logger.error(f"Skipping {media_file.name}: {e}")

    if not session.tasks:
        logger.error("None of the input files could be read.")
        return 1

    logger.info(f"Output directory: {settings.output_dir}")
    session.start_all()
    try:
        session.run_until_idle()
    except KeyboardInterrupt:
        logger.warning("Interrupted. Stopping the batch and terminating running encoders.")
        session.shutdown()
        return 130

    summary = session.summary()
    logger.success(
        f"Batch Transcoder finished: {summary['complete']} of {summary['total']} completed, "
        f"{summary['error']} failed."
    )
    return 0 if summary["error"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
