"""
Command-Line Interface (CLI) setup for the Batch Transcoder.

This module uses Python's `argparse` to define and parse the command-line
arguments that control the application's behavior, and turns them into the
`EncodingIntent` and `UserSettings` the orchestration core works with.
"""
import argparse
from pathlib import Path
from typing import List, Optional

from .config.common import (
    CODEC_TYPE_CPU,
    CODEC_TYPE_GPU,
    FILE_NAME_MODE_CUSTOM,
    USER_CONFIG_PATH,
    UserSettings,
)
from .config.video import KNOWN_VIDEO_CODECS, QUALITY_ORIGINAL, QUALITY_TIER_ORDER
from .domain.models import EncodingIntent


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments for the Batch Transcoder.

    Args:
        argv: The arguments to parse. Defaults to `sys.argv[1:]`.

    Returns:
        argparse.Namespace: An object containing the parsed command-line
                            arguments as attributes.
    """
    parser = argparse.ArgumentParser(description="Batch transcoder for video/audio files.")
    parser.add_argument(
        "inputs", nargs="*", type=Path, help="Files or directories to convert."
    )
    parser.add_argument(
        "--target-dir", type=Path, default=None,
        help="Directory to scan for media files (used when no inputs are given; defaults to the current directory)."
    )
    parser.add_argument(
        "--no-recursive", action="store_true", help="Do not scan sub-directories of input directories."
    )
    parser.add_argument(
        "--config", type=Path, default=USER_CONFIG_PATH, help="Path of the user settings YAML file."
    )
    parser.add_argument(
        "--output-dir", type=Path, default=None, help="Directory for converted files (overrides the config file)."
    )
    parser.add_argument(
        "--processes", type=int, default=None,
        help="Number of encoder processes to run at once per task class (overrides the config file)."
    )

    # --- Video ---
    parser.add_argument(
        "--container", type=str, default="", help="Output container, e.g. mp4, mkv, webm, mp3. Defaults to the source's."
    )
    parser.add_argument(
        "--codec", type=str, default=None, choices=list(KNOWN_VIDEO_CODECS),
        help="Video codec. Defaults to the source codec when the container allows it."
    )
    parser.add_argument(
        "--quality", type=str, default="medium", choices=list(QUALITY_TIER_ORDER) + [QUALITY_ORIGINAL],
        help="Quality tier. 'original' applies no tier settings and enables stream copy when nothing else changes."
    )
    parser.add_argument("--video-bitrate", type=str, default=None, help="Explicit video bitrate, e.g. 3000k.")
    parser.add_argument("--fps", type=float, default=None, help="Output frame rate.")
    parser.add_argument("--preset", type=str, default=None, help="Encoder preset, passed through as given.")
    parser.add_argument("--tune", type=str, default=None, help="Encoder tune, passed through as given.")
    parser.add_argument("--profile", type=str, default=None, help="Encoder profile (-profile:v).")
    parser.add_argument("--level", type=str, default=None, help="Encoder level.")
    parser.add_argument("--pix-fmt", type=str, default=None, help="Pixel format, e.g. yuv420p.")
    parser.add_argument("--width", type=int, default=None, help="Output width. A missing height keeps the aspect.")
    parser.add_argument("--height", type=int, default=None, help="Output height. A missing width keeps the aspect.")

    # --- Hardware ---
    parser.add_argument(
        "--gpu", action="store_true", help="Use a hardware encoder when one is available."
    )
    parser.add_argument(
        "--cpu", action="store_true", help="Force software encoders (overrides the config file)."
    )
    parser.add_argument(
        "--codec-method", type=str, default=None,
        help="Hardware encoder family: nvenc, amf, qsv, videotoolbox (or nvidia, amd, intel, apple)."
    )

    # --- Audio ---
    parser.add_argument("--audio-codec", type=str, default=None, help="Audio codec, e.g. aac, libopus.")
    parser.add_argument("--audio-bitrate", type=str, default=None, help="Audio bitrate, e.g. 192k.")
    parser.add_argument("--sample-rate", type=int, default=None, help="Audio sample rate in Hz.")
    parser.add_argument("--channels", type=int, default=None, help="Audio channel count.")
    parser.add_argument("--no-audio", action="store_true", help="Drop audio from video outputs.")

    # --- Output naming / logs ---
    parser.add_argument(
        "--name-rule", type=str, default=None,
        help="Custom output name rule with {name}, {ext}, {time} and {random} placeholders."
    )
    parser.add_argument(
        "--no-job-logs", action="store_true", help="Do not write YAML success logs and text error logs."
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO", choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level."
    )

    args = parser.parse_args(argv)

    if args.gpu and args.cpu:
        parser.error("--gpu and --cpu cannot be used together.")
    if args.processes is not None and args.processes < 1:
        parser.error("--processes must be at least 1.")

    return args


def apply_args_to_settings(args: argparse.Namespace, settings: UserSettings) -> UserSettings:
    """Overrides persisted settings with the flags given on the command line."""
    if args.output_dir:
        settings.output_dir = args.output_dir.expanduser().resolve()
    if args.processes:
        settings.parallel_tasks = args.processes
    if args.gpu:
        settings.codec_type = CODEC_TYPE_GPU
    elif args.cpu:
        settings.codec_type = CODEC_TYPE_CPU
    if args.codec_method:
        settings.codec_method = args.codec_method
    if args.name_rule:
        settings.file_name_mode = FILE_NAME_MODE_CUSTOM
        settings.custom_name_rule = args.name_rule
    if args.no_job_logs:
        settings.write_job_logs = False
    return settings


def intent_from_args(args: argparse.Namespace, settings: UserSettings) -> EncodingIntent:
    """Builds the encoding intent shared by every file of a CLI run."""
    return EncodingIntent(
        container=args.container,
        video_codec=args.codec,
        quality_tier=args.quality,
        video_bitrate=args.video_bitrate,
        fps=args.fps,
        preset=args.preset,
        tune=args.tune,
        profile=args.profile,
        level=args.level,
        pixel_format=args.pix_fmt,
        width=args.width,
        height=args.height,
        audio_codec=args.audio_codec,
        audio_bitrate=args.audio_bitrate,
        audio_sample_rate=args.sample_rate,
        audio_channels=args.channels,
        no_audio=args.no_audio,
        codec_type=settings.codec_type,
        codec_method=settings.codec_method,
    )
