"""
Encoding Plan Resolver.

Turns a probed `MediaDescriptor`, the user's `EncodingIntent` and the detected
`HardwareProfile` into a concrete `EncodingPlan`. Resolution is total: every
combination of inputs yields a plan. Unsupported choices are replaced by the
nearest supported one and logged at DEBUG level.

The order of decisions is:
    1. Audio-only sources get an audio plan (per-container audio defaults only).
    2. The stream-copy shortcut, when the output can be a plain re-mux.
    3. Container/codec compatibility.
    4. Hardware path selection.
    5. Rate control from the quality tier, with user values taking priority.
    6. Resolution scaling.
    7. Audio defaults per container.
"""

from typing import Optional, Tuple

from loguru import logger

from ..config.audio import (
    AUDIO_BITRATE_CEILING,
    AUDIO_BITRATE_FLOOR,
    AUDIO_CONTAINER_DEFAULTS,
    DEFAULT_AUDIO_BITRATE,
    DEFAULT_AUDIO_CHANNELS,
    FALLBACK_AUDIO_DEFAULTS,
    LOSSLESS_AUDIO_CODECS,
)
from ..config.video import (
    CODEC_METHOD_VENDORS,
    CONTAINER_CODEC_SUPPORT,
    DEFAULT_CONTAINER_CODECS,
    DEFAULT_QUALITY_TIER,
    DEFAULT_VIDEO_CODEC,
    HARDWARE_CAPABLE_CODECS,
    HARDWARE_PIXEL_FORMAT,
    HARDWARE_UNSUPPORTED_PIXEL_FORMATS,
    HW_SUFFIX_AMF,
    HW_SUFFIX_NVENC,
    HW_SUFFIX_QSV,
    HW_SUFFIX_VIDEOTOOLBOX,
    KNOWN_VIDEO_CODECS,
    QUALITY_ORIGINAL,
    QUALITY_TIERS,
    SCALE_FLAGS,
    SCALE_KEEP_ASPECT,
    SOFTWARE_ENCODERS,
    VENDOR_HARDWARE_SUFFIX,
)
from ..domain.media import MediaDescriptor, normalize_codec
from ..domain.models import EncodingIntent, EncodingPlan, HardwareProfile
from ..utils.format_utils import format_bitrate, parse_bitrate


def normalize_container(container: Optional[str]) -> str:
    """'.MP4' -> 'mp4'."""
    return (container or "").strip().lower().lstrip(".")


def output_container(media: MediaDescriptor, intent: EncodingIntent) -> str:
    """The container the job writes: the intent's, or the source's when unset."""
    return normalize_container(intent.container) or media.container


# --- Stream Copy ---
def is_stream_copy_eligible(media: MediaDescriptor, intent: EncodingIntent) -> bool:
    """
    Checks whether the job can re-mux the source without re-encoding.

    All of these must hold:
      - the output container equals the source container,
      - the quality tier is "original",
      - there is no explicit video override (see `EncodingIntent.has_video_overrides`),
      - audio is dropped, or there is no explicit audio override.

    Args:
        media: The probed source.
        intent: The user's intent.

    Returns:
        True if a stream copy plan should be used.
    """
    if output_container(media, intent) != media.container:
        return False
    if intent.quality_tier != QUALITY_ORIGINAL:
        return False
    if intent.has_video_overrides(media):
        return False
    if not intent.no_audio and intent.has_audio_overrides():
        return False
    return True


# --- Codec / Hardware Selection ---
def select_codec(container: str, requested: Optional[str], source_codec: str = "") -> str:
    """
    Picks the base video codec for a container.

    An unset request follows the source codec when it is one of the known codecs,
    else h264. A codec the container cannot carry is replaced by the first codec
    the container allows.
    """
    codec = normalize_codec(requested)
    if not codec:
        source = normalize_codec(source_codec)
        codec = source if source in KNOWN_VIDEO_CODECS else DEFAULT_VIDEO_CODEC

    allowed = CONTAINER_CODEC_SUPPORT.get(container, DEFAULT_CONTAINER_CODECS)
    if codec not in allowed:
        logger.debug(f"Codec '{codec}' is not supported in '{container}'. Using '{allowed[0]}'.")
        codec = allowed[0]
    return codec


def select_hardware_suffix(
    codec: str, intent: EncodingIntent, hardware: HardwareProfile
) -> Optional[str]:
    """
    Chooses the hardware encoder suffix, or None for the software path.

    On macOS the suffix is always "videotoolbox". Elsewhere the vendor named by the
    intent's method string wins over the detected GPU vendor.

    Args:
        codec: The base codec chosen for the container.
        intent: The user's intent (codec type and method string).
        hardware: The detected hardware profile.

    Returns:
        "nvenc", "amf", "qsv", "videotoolbox", or None.
    """
    if not intent.gpu_requested:
        return None
    if codec not in HARDWARE_CAPABLE_CODECS:
        logger.debug(f"No hardware encoder for '{codec}'. Using the software encoder.")
        return None
    if hardware.is_macos:
        return HW_SUFFIX_VIDEOTOOLBOX

    method = (intent.codec_method or "").strip().lower()
    vendor = CODEC_METHOD_VENDORS.get(method) or hardware.gpu_vendor
    suffix = VENDOR_HARDWARE_SUFFIX.get(vendor)
    if suffix is None:
        logger.debug(f"Unknown GPU vendor '{vendor}' (method '{method}'). Using the software encoder.")
    return suffix


def hardware_quality_args(suffix: str, tier_settings: dict) -> Tuple[str, ...]:
    """Rate-control arguments of a hardware path for one quality tier."""
    if suffix == HW_SUFFIX_NVENC:
        return ("-rc", "vbr", "-cq", str(tier_settings["nvenc_cq"]))
    if suffix == HW_SUFFIX_AMF:
        return ("-rc", "qvbr", "-qvbr_quality_level", str(tier_settings["amf_quality"]))
    if suffix == HW_SUFFIX_QSV:
        return ("-global_quality", str(tier_settings["qsv_quality"]))
    if suffix == HW_SUFFIX_VIDEOTOOLBOX:
        return ("-q:v", str(tier_settings["videotoolbox_q"]))
    return ()


def scale_filter(media: MediaDescriptor, intent: EncodingIntent) -> Optional[str]:
    """
    Builds the lanczos scale filter when the requested size differs from the source.

    A missing side is -2, which keeps the aspect ratio and rounds to an even size.
    """
    width_changes = bool(intent.width) and intent.width != media.width
    height_changes = bool(intent.height) and intent.height != media.height
    if not (width_changes or height_changes):
        return None
    width = intent.width or SCALE_KEEP_ASPECT
    height = intent.height or SCALE_KEEP_ASPECT
    return f"scale={width}:{height}:flags={SCALE_FLAGS}"


# --- Audio ---
def clamp_audio_bitrate(bitrate: Optional[str], fallback: str = DEFAULT_AUDIO_BITRATE) -> str:
    """
    Snaps a lossy audio bitrate into [32k, 512k].

    An unparseable value is replaced by the fallback.
    """
    bits = parse_bitrate(bitrate)
    if bits is None:
        if bitrate:
            logger.debug(f"Unparseable audio bitrate '{bitrate}'. Using '{fallback}'.")
        bits = parse_bitrate(fallback) or AUDIO_BITRATE_FLOOR
    clamped = max(AUDIO_BITRATE_FLOOR, min(AUDIO_BITRATE_CEILING, bits))
    if clamped != bits:
        logger.debug(f"Audio bitrate {bits} clamped to {clamped}.")
    return format_bitrate(clamped)


def resolve_audio_settings(
    container: str, intent: EncodingIntent
) -> Tuple[str, Optional[str], Optional[int], int]:
    """
    Resolves the audio codec, bitrate, sample rate and channel count for a container.

    Per-container defaults apply only where the user set nothing. A user codec
    outside the container's allowed set is replaced by the container default.
    Lossless codecs carry no bitrate.

    Returns:
        (codec, bitrate, sample_rate, channels)
    """
    defaults = AUDIO_CONTAINER_DEFAULTS.get(container, FALLBACK_AUDIO_DEFAULTS)
    allowed = defaults["allowed"]

    codec = (intent.audio_codec or "").strip().lower() or defaults["codec"]
    if allowed is not None and codec not in allowed:
        logger.debug(f"Audio codec '{codec}' is not allowed in '{container}'. Using '{defaults['codec']}'.")
        codec = defaults["codec"]

    bitrate: Optional[str] = None
    if codec not in LOSSLESS_AUDIO_CODECS:
        bitrate = clamp_audio_bitrate(
            intent.audio_bitrate or defaults["bitrate"] or DEFAULT_AUDIO_BITRATE,
            fallback=defaults["bitrate"] or DEFAULT_AUDIO_BITRATE,
        )

    channels = intent.audio_channels or DEFAULT_AUDIO_CHANNELS
    return codec, bitrate, intent.audio_sample_rate, channels


# ======================================================================================
# Entry Point
# ======================================================================================


def resolve(
    media: MediaDescriptor, intent: EncodingIntent, hardware: HardwareProfile
) -> EncodingPlan:
    """
    Resolves the encoder plan for one job.

    Args:
        media: The probed source.
        intent: The user's intent. It is read, never modified.
        hardware: The detected hardware profile.

    Returns:
        The plan. This function never raises for any combination of valid inputs.
    """
    container = output_container(media, intent)

    if media.is_audio:
        if intent.no_audio:
            logger.warning(f"'no_audio' ignored for audio source {media.path.name}.")
        codec, bitrate, sample_rate, channels = resolve_audio_settings(container, intent)
        plan = EncodingPlan(
            container=container,
            audio_codec=codec,
            audio_bitrate=bitrate,
            audio_sample_rate=sample_rate,
            audio_channels=channels,
            audio_only=True,
        )
        logger.debug(f"Resolved audio plan for {media.path.name}: {plan}")
        return plan

    if is_stream_copy_eligible(media, intent):
        plan = EncodingPlan(
            container=container,
            codec=normalize_codec(media.video_codec),
            no_audio=intent.no_audio,
            stream_copy=True,
        )
        logger.debug(f"Resolved stream copy plan for {media.path.name}.")
        return plan

    codec = select_codec(container, intent.video_codec, media.video_codec)
    suffix = select_hardware_suffix(codec, intent, hardware)
    video_encoder = f"{codec}_{suffix}" if suffix else SOFTWARE_ENCODERS[codec]

    is_original = intent.quality_tier == QUALITY_ORIGINAL
    tier_settings = None
    if not is_original:
        tier_settings = QUALITY_TIERS.get(intent.quality_tier)
        if tier_settings is None:
            logger.debug(f"Unknown quality tier '{intent.quality_tier}'. Using '{DEFAULT_QUALITY_TIER}'.")
            tier_settings = QUALITY_TIERS[DEFAULT_QUALITY_TIER]

    # --- Rate control ---
    crf = None
    quality_args: Tuple[str, ...] = ()
    video_bitrate = intent.video_bitrate
    pixel_format = intent.pixel_format
    if tier_settings:
        if not video_bitrate:
            video_bitrate = tier_settings["bitrate"]
        if suffix:
            quality_args = hardware_quality_args(suffix, tier_settings)
        else:
            crf = tier_settings["crf"]
        if not pixel_format:
            pixel_format = tier_settings["pix_fmt"]
            if suffix and pixel_format in HARDWARE_UNSUPPORTED_PIXEL_FORMATS:
                pixel_format = HARDWARE_PIXEL_FORMAT

    # --- Audio ---
    audio_codec = audio_bitrate = None
    audio_sample_rate = None
    audio_channels = None
    if not intent.no_audio and media.has_audio:
        audio_codec, audio_bitrate, audio_sample_rate, audio_channels = resolve_audio_settings(
            container, intent
        )

    plan = EncodingPlan(
        container=container,
        codec=codec,
        video_encoder=video_encoder,
        hardware=suffix is not None,
        hardware_suffix=suffix,
        crf=crf,
        video_bitrate=video_bitrate,
        quality_args=quality_args,
        preset=intent.preset,
        tune=intent.tune,
        profile=intent.profile,
        level=intent.level,
        pixel_format=pixel_format,
        scale_filter=None if is_original else scale_filter(media, intent),
        fps=intent.fps,
        audio_codec=audio_codec,
        audio_bitrate=audio_bitrate,
        audio_sample_rate=audio_sample_rate,
        audio_channels=audio_channels,
        no_audio=intent.no_audio,
    )
    logger.debug(f"Resolved plan for {media.path.name}: {plan}")
    return plan
