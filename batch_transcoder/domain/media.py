import re
from dataclasses import dataclass
from pathlib import Path
from pprint import pformat
from typing import Optional

import ffmpeg
from loguru import logger

from .exceptions import MediaProbeException, UnsupportedMediaException
from ..config.video import CODEC_ALIASES, STILL_IMAGE_CODECS


def parse_duration(duration_str: str) -> float:
    """
    Parses a duration string into total seconds.

    This function is designed to handle two common duration formats provided by ffprobe:
    1. A simple string representing a floating-point number of seconds (e.g., "3600.5").
    2. A timecode string in the format 'HH:MM:SS.sss' (e.g., "01:00:00.500").
       Hours are optional in the timecode format.

    Args:
        duration_str: The string containing the duration to parse.

    Returns:
        The total duration in seconds as a float. Returns 0.0 if parsing fails.
    """
    try:
        return float(duration_str)
    except (TypeError, ValueError):
        if not isinstance(duration_str, str):
            return 0.0
        pattern = r"(?:(\d{1,2}):)?(\d{1,2}):(\d{1,2}(?:\.\d+)?)"
        match = re.fullmatch(pattern, duration_str.strip())
        if match:
            hours_str, minutes_str, seconds_str = match.groups()
            hours = int(hours_str) if hours_str else 0
            minutes = int(minutes_str)
            seconds = float(seconds_str)
            return float(hours * 3600 + minutes * 60 + seconds)
        logger.warning(f"Could not parse duration string: {duration_str}")
    return 0.0


def normalize_codec(codec: Optional[str]) -> Optional[str]:
    """'H265' -> 'hevc'. None for an empty codec."""
    if not codec:
        return None
    codec = codec.strip().lower()
    return CODEC_ALIASES.get(codec, codec) or None


def parse_frame_rate(rate: Optional[str]) -> float:
    """Convert an ffprobe rate such as '24000/1001' to a float. 0.0 when unknown."""
    if not rate:
        return 0.0
    try:
        if "/" in rate:
            num, den = rate.split("/", 1)
            return float(num) / float(den) if float(den) != 0 else 0.0
        return float(rate)
    except (ValueError, ZeroDivisionError):
        return 0.0


def _to_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class MediaDescriptor:
    """
    Immutable description of one input file, produced once at import time.

    Attributes:
        path (Path): Absolute path of the source file.
        container (str): Container name taken from the file extension, lowercase, no dot.
        video_codec (str): Codec name of the first real video stream, '' when absent.
        audio_codec (str): Codec name of the first audio stream, '' when absent.
        width (int), height (int): Frame size of the video stream.
        frame_rate (float): Frames per second of the video stream.
        video_bitrate (int): Video stream bitrate in bits per second.
        pixel_format (str): Pixel format of the video stream.
        sample_rate (int): Audio sample rate in Hz.
        channels (int): Audio channel count.
        audio_bitrate (int): Audio stream bitrate in bits per second.
        duration (float): Duration in seconds, 0.0 when unknown.
        has_video (bool): True when a non-still-image video stream exists.
        has_audio (bool): True when at least one audio stream exists.
    """

    path: Path
    container: str = ""
    video_codec: str = ""
    audio_codec: str = ""
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    video_bitrate: int = 0
    pixel_format: str = ""
    sample_rate: int = 0
    channels: int = 0
    audio_bitrate: int = 0
    duration: float = 0.0
    has_video: bool = False
    has_audio: bool = False

    @property
    def is_video(self) -> bool:
        return self.has_video

    @property
    def is_audio(self) -> bool:
        # Audio files with embedded cover art still count as audio.
        return self.has_audio and not self.has_video

    @property
    def stem(self) -> str:
        return self.path.stem


def descriptor_from_probe(path: Path, probe_data: dict) -> MediaDescriptor:
    """
    Builds a MediaDescriptor from raw ffprobe JSON.

    Only the first real video stream and the first audio stream are considered.
    Video streams whose codec is a still-image format (cover art) are ignored.

    Args:
        path: The probed file.
        probe_data: The dictionary returned by `ffmpeg.probe`.

    Returns:
        The descriptor.
    """
    streams = probe_data.get("streams", []) or []
    fmt = probe_data.get("format", {}) or {}

    video_stream = next(
        (
            s
            for s in streams
            if s.get("codec_type") == "video"
            and (s.get("codec_name") or "").lower() not in STILL_IMAGE_CODECS
        ),
        None,
    )
    audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)

    video = video_stream or {}
    audio = audio_stream or {}

    duration = parse_duration(fmt.get("duration", 0.0))
    if duration <= 0 and video_stream:
        duration = parse_duration(video.get("duration", 0.0))
    if duration <= 0 and audio_stream:
        duration = parse_duration(audio.get("duration", 0.0))

    return MediaDescriptor(
        path=path,
        container=path.suffix.lower().lstrip("."),
        video_codec=(video.get("codec_name") or "").lower(),
        audio_codec=(audio.get("codec_name") or "").lower(),
        width=_to_int(video.get("width")),
        height=_to_int(video.get("height")),
        frame_rate=parse_frame_rate(video.get("r_frame_rate") or video.get("avg_frame_rate")),
        video_bitrate=_to_int(video.get("bit_rate")),
        pixel_format=video.get("pix_fmt") or "",
        sample_rate=_to_int(audio.get("sample_rate")),
        channels=_to_int(audio.get("channels")),
        audio_bitrate=_to_int(audio.get("bit_rate")),
        duration=duration,
        has_video=video_stream is not None,
        has_audio=audio_stream is not None,
    )


def probe_media(path: Path, ffprobe_cmd: str = "ffprobe") -> MediaDescriptor:
    """
    Probes a media file with ffprobe (via the ffmpeg-python library).

    Args:
        path: The file to probe.
        ffprobe_cmd: The ffprobe executable to run.

    Returns:
        The MediaDescriptor for the file.

    Raises:
        FileNotFoundError: If the file does not exist.
        MediaProbeException: If ffprobe fails or cannot be run.
        UnsupportedMediaException: If the file has no video and no audio stream.
    """
    if not path.exists():
        logger.error(f"Probe error: file does not exist at {path}")
        raise FileNotFoundError(f"Media file not found: {path}")

    path = path.resolve()
    try:
        probe_data = ffmpeg.probe(str(path), cmd=ffprobe_cmd)
    except ffmpeg.Error as e:
        stderr = e.stderr.decode("utf-8", errors="replace") if isinstance(e.stderr, bytes) else e.stderr
        logger.error(f"ffmpeg.probe failed for {path}: {stderr}")
        raise MediaProbeException(f"Failed to probe media file {path}: {stderr}") from e
    except FileNotFoundError as e:
        logger.error(f"ffprobe executable '{ffprobe_cmd}' not found.")
        raise MediaProbeException(f"ffprobe not found while probing {path}") from e

    logger.trace(f"Probe data for {path.name}:\n{pformat(probe_data)}")

    descriptor = descriptor_from_probe(path, probe_data)
    if not descriptor.has_video and not descriptor.has_audio:
        raise UnsupportedMediaException(f"No video or audio stream found in {path}")

    logger.debug(
        f"Probed {path.name}: container={descriptor.container}, video={descriptor.video_codec or '-'} "
        f"{descriptor.width}x{descriptor.height}@{descriptor.frame_rate:.2f}, "
        f"audio={descriptor.audio_codec or '-'}, duration={descriptor.duration:.2f}s"
    )
    return descriptor
