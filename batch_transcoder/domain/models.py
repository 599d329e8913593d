"""
Data models shared by the orchestration core.

These dataclasses carry the user's intent, the resolved encoder plan, the detected
hardware, the per-file task record and the scheduler snapshot between the
services. None of them owns an OS process; process handles live only in the
`TaskProcessManager`.
"""

import uuid
from dataclasses import dataclass, field, FrozenInstanceError, replace
from pathlib import Path
from typing import FrozenSet, Optional, Tuple

from .media import MediaDescriptor, normalize_codec
from ..config.common import (
    BATCH_STATUS_IDLE,
    CODEC_TYPE_CPU,
    CODEC_TYPE_GPU,
    TASK_CLASS_VIDEO,
    TASK_STATUS_READY,
    TASK_STATUS_PROCESSING,
    TASK_STATUS_COMPLETE,
    TASK_STATUS_ERROR,
)
from ..config.video import DEFAULT_QUALITY_TIER, VENDOR_UNKNOWN


# ======================================================================================
# User Intent
# ======================================================================================


@dataclass
class EncodingIntent:
    """
    What the user asked for, before any platform or container rules are applied.

    The intent is editable until its task starts. `freeze()` returns a copy that
    rejects attribute assignment; the running job keeps only that copy, so later
    edits to the original never reach an encoder that is already running.

    Attributes:
        container: Target container (file extension without the dot). Empty means
                   "same as the source".
        video_codec: "h264", "hevc", "vp9" or None to follow the source.
        quality_tier: One of the tier names or "original".
        video_bitrate: Explicit video bitrate in ffmpeg syntax (e.g. "3000k").
        fps: Explicit output frame rate.
        preset, tune, profile, level: Passed through to the encoder as given.
        pixel_format: Explicit pixel format; wins over the tier hint.
        width, height: Requested output frame size. A missing side keeps the aspect.
        audio_codec, audio_bitrate, audio_sample_rate, audio_channels: Audio overrides.
        no_audio: Drop every audio stream.
        codec_type: "CPU" or "GPU".
        codec_method: Vendor method string used with "GPU" (e.g. "nvenc").
        custom_name_rule: Output name template; empty keeps the source stem.
    """

    container: str = ""
    video_codec: Optional[str] = None
    quality_tier: str = DEFAULT_QUALITY_TIER
    video_bitrate: Optional[str] = None
    fps: Optional[float] = None
    preset: Optional[str] = None
    tune: Optional[str] = None
    profile: Optional[str] = None
    level: Optional[str] = None
    pixel_format: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    audio_codec: Optional[str] = None
    audio_bitrate: Optional[str] = None
    audio_sample_rate: Optional[int] = None
    audio_channels: Optional[int] = None
    no_audio: bool = False
    codec_type: str = CODEC_TYPE_CPU
    codec_method: str = ""
    custom_name_rule: str = ""
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name, value):
        if getattr(self, "_frozen", False):
            raise FrozenInstanceError(f"cannot assign to field '{name}' of a frozen intent")
        super().__setattr__(name, value)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def gpu_requested(self) -> bool:
        return (self.codec_type or "").upper() == CODEC_TYPE_GPU

    def freeze(self) -> "EncodingIntent":
        """Returns an immutable copy of this intent."""
        frozen_copy = replace(self)
        object.__setattr__(frozen_copy, "_frozen", True)
        return frozen_copy

    def has_video_overrides(self, media: MediaDescriptor) -> bool:
        """
        True if anything would force the video stream to be re-encoded.

        A codec equal to the source codec and a frame size equal to the source
        size are not overrides.
        """
        if self.video_bitrate or self.fps or self.preset or self.pixel_format:
            return True
        if self.tune or self.profile or self.level:
            return True
        if self.video_codec and normalize_codec(self.video_codec) != normalize_codec(media.video_codec):
            return True
        if self.width and self.width != media.width:
            return True
        if self.height and self.height != media.height:
            return True
        return False

    def has_audio_overrides(self) -> bool:
        return bool(
            self.audio_codec
            or self.audio_bitrate
            or self.audio_sample_rate
            or self.audio_channels
        )


# ======================================================================================
# Resolved Plan
# ======================================================================================


@dataclass(frozen=True)
class EncodingPlan:
    """
    The concrete encoder settings for one job, computed once by the resolver.

    A paused and resumed job keeps using the same plan; a restarted job gets the
    same plan again because it is stored with the process record.

    Attributes:
        container: Output container the plan was resolved for.
        codec: Base codec ("h264", "hevc", "vp9"), None for audio-only plans.
        video_encoder: ffmpeg encoder name (e.g. "libx264", "hevc_nvenc"), None
                       for audio-only plans and stream copy.
        hardware: True when a GPU encoder was selected.
        hardware_suffix: "nvenc", "amf", "qsv" or "videotoolbox" on hardware paths.
        crf: Software quality factor, None on hardware paths and for "original".
        video_bitrate: Value for -b:v (tier floor or the user's bitrate).
        quality_args: Hardware rate-control arguments (e.g. ("-rc", "vbr", "-cq", "23")).
        preset, tune, profile, level: Passed through from the intent.
        pixel_format: Value for -pix_fmt.
        scale_filter: Value for -vf, e.g. "scale=1280:-2:flags=lanczos".
        fps: Output frame rate.
        audio_codec, audio_bitrate, audio_sample_rate, audio_channels: Audio settings.
        no_audio: Emit -an.
        stream_copy: Re-mux without re-encoding.
        audio_only: Emit -vn; no video settings apply.
    """

    container: str
    codec: Optional[str] = None
    video_encoder: Optional[str] = None
    hardware: bool = False
    hardware_suffix: Optional[str] = None
    crf: Optional[int] = None
    video_bitrate: Optional[str] = None
    quality_args: Tuple[str, ...] = ()
    preset: Optional[str] = None
    tune: Optional[str] = None
    profile: Optional[str] = None
    level: Optional[str] = None
    pixel_format: Optional[str] = None
    scale_filter: Optional[str] = None
    fps: Optional[float] = None
    audio_codec: Optional[str] = None
    audio_bitrate: Optional[str] = None
    audio_sample_rate: Optional[int] = None
    audio_channels: Optional[int] = None
    no_audio: bool = False
    stream_copy: bool = False
    audio_only: bool = False


# ======================================================================================
# Hardware
# ======================================================================================


@dataclass(frozen=True)
class HardwareProfile:
    """GPU vendor and OS family, detected once per session."""

    gpu_vendor: str = VENDOR_UNKNOWN
    os_family: str = "other"
    gpu_names: Tuple[str, ...] = ()

    @property
    def is_macos(self) -> bool:
        return self.os_family == "macos"


# ======================================================================================
# Task and Batch State
# ======================================================================================


def new_task_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class Task:
    """
    One file in the batch.

    The status only moves forward: ready -> processing -> complete | error.
    `paused` can only be true while the status is processing.
    """

    input_path: Path
    output_path: Path
    descriptor: MediaDescriptor
    intent: EncodingIntent
    task_class: str = TASK_CLASS_VIDEO
    id: str = field(default_factory=new_task_id)
    status: str = TASK_STATUS_READY
    paused: bool = False
    progress: float = 0.0
    plan: Optional[EncodingPlan] = None
    error_message: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.status == TASK_STATUS_READY

    @property
    def is_processing(self) -> bool:
        return self.status == TASK_STATUS_PROCESSING

    @property
    def is_finished(self) -> bool:
        return self.status in (TASK_STATUS_COMPLETE, TASK_STATUS_ERROR)


@dataclass(frozen=True)
class BatchState:
    """Read-only snapshot of a scheduler: its status, queued ids in order and running ids."""

    status: str = BATCH_STATUS_IDLE
    queue: Tuple[str, ...] = ()
    running: FrozenSet[str] = frozenset()
    concurrency_limit: int = 1
