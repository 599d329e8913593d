"""
Configuration settings related to video processing.

This module defines the static tables the Encoding Plan Resolver reads: which
codecs each container may carry, the quality-tier table, the encoder names for the
software and hardware paths, and the per-path rate-control values.
"""

# --- General Video Settings ---
VIDEO_EXTENSIONS = (
    ".mp4", ".mkv", ".avi", ".wmv", ".flv", ".mov", ".mpg", ".mpeg", ".rm",
    ".rmvb", ".vob", ".webm", ".m4v", ".3gp", ".3g2", ".ts", ".mts", ".m2ts",
)

# Video streams with these codecs are cover art inside audio files, not real video.
STILL_IMAGE_CODECS = ("mjpeg", "png")

# --- Codec Settings ---
CODEC_H264 = "h264"
CODEC_HEVC = "hevc"
CODEC_VP9 = "vp9"
KNOWN_VIDEO_CODECS = (CODEC_H264, CODEC_HEVC, CODEC_VP9)
DEFAULT_VIDEO_CODEC = CODEC_H264

# Other names users commonly type for the base codecs.
CODEC_ALIASES = {
    "avc": CODEC_H264,
    "x264": CODEC_H264,
    "libx264": CODEC_H264,
    "h265": CODEC_HEVC,
    "x265": CODEC_HEVC,
    "libx265": CODEC_HEVC,
    "libvpx-vp9": CODEC_VP9,
}

# The codecs each output container is allowed to carry. When a requested codec is
# not in the set, the first entry is used instead.
CONTAINER_CODEC_SUPPORT = {
    "mp4": (CODEC_H264, CODEC_HEVC),
    "m4v": (CODEC_H264, CODEC_HEVC),
    "mov": (CODEC_H264, CODEC_HEVC),
    "ts": (CODEC_H264, CODEC_HEVC),
    "m3u8": (CODEC_H264, CODEC_HEVC),
    "mkv": (CODEC_H264, CODEC_HEVC, CODEC_VP9),
    "webm": (CODEC_VP9,),
    "avi": (CODEC_H264,),
    "flv": (CODEC_H264,),
}
DEFAULT_CONTAINER_CODECS = (CODEC_H264, CODEC_HEVC)

# Software encoder implementation per codec.
SOFTWARE_ENCODERS = {
    CODEC_H264: "libx264",
    CODEC_HEVC: "libx265",
    CODEC_VP9: "libvpx-vp9",
}

# Codecs with a GPU-accelerated counterpart ("<codec>_<suffix>").
HARDWARE_CAPABLE_CODECS = (CODEC_H264, CODEC_HEVC)

# --- Hardware Vendor Settings ---
VENDOR_AMD = "AMD"
VENDOR_INTEL = "Intel"
VENDOR_NVIDIA = "NVIDIA"
VENDOR_APPLE = "Apple"
VENDOR_UNKNOWN = "unknown"

HW_SUFFIX_NVENC = "nvenc"
HW_SUFFIX_AMF = "amf"
HW_SUFFIX_QSV = "qsv"
HW_SUFFIX_VIDEOTOOLBOX = "videotoolbox"

VENDOR_HARDWARE_SUFFIX = {
    VENDOR_NVIDIA: HW_SUFFIX_NVENC,
    VENDOR_AMD: HW_SUFFIX_AMF,
    VENDOR_INTEL: HW_SUFFIX_QSV,
    VENDOR_APPLE: HW_SUFFIX_VIDEOTOOLBOX,
}

# Method strings accepted in the "codec_method" setting, lowercased.
CODEC_METHOD_VENDORS = {
    "amd": VENDOR_AMD,
    "amf": VENDOR_AMD,
    "intel": VENDOR_INTEL,
    "qsv": VENDOR_INTEL,
    "nvidia": VENDOR_NVIDIA,
    "nvenc": VENDOR_NVIDIA,
    "apple": VENDOR_APPLE,
    "videotoolbox": VENDOR_APPLE,
}

# Vendor strings reported by the OS, mapped to vendor names.
GPU_VENDOR_NAMES = {
    "advanced micro devices": VENDOR_AMD,
    "ati technologies": VENDOR_AMD,
    "amd": VENDOR_AMD,
    "intel": VENDOR_INTEL,
    "nvidia": VENDOR_NVIDIA,
    "apple": VENDOR_APPLE,
}

# --- Quality Tier Settings ---
QUALITY_VERY_LOW = "very_low"
QUALITY_LOW = "low"
QUALITY_MEDIUM = "medium"
QUALITY_HIGH = "high"
QUALITY_VERY_HIGH = "very_high"
QUALITY_ORIGINAL = "original"

QUALITY_TIER_ORDER = (
    QUALITY_VERY_LOW,
    QUALITY_LOW,
    QUALITY_MEDIUM,
    QUALITY_HIGH,
    QUALITY_VERY_HIGH,
)
DEFAULT_QUALITY_TIER = QUALITY_MEDIUM

# bitrate: floor for the software path (ffmpeg -b:v syntax)
# crf: software quality factor
# pix_fmt: pixel-format hint
# nvenc_cq / amf_quality / qsv_quality / videotoolbox_q: per hardware path
QUALITY_TIERS = {
    QUALITY_VERY_LOW: {
        "bitrate": "500k", "crf": 30, "pix_fmt": "yuv420p",
        "nvenc_cq": 32, "amf_quality": 20, "qsv_quality": 32, "videotoolbox_q": 40,
    },
    QUALITY_LOW: {
        "bitrate": "1000k", "crf": 28, "pix_fmt": "yuv420p",
        "nvenc_cq": 28, "amf_quality": 30, "qsv_quality": 28, "videotoolbox_q": 50,
    },
    QUALITY_MEDIUM: {
        "bitrate": "2000k", "crf": 23, "pix_fmt": "yuv420p",
        "nvenc_cq": 23, "amf_quality": 40, "qsv_quality": 23, "videotoolbox_q": 60,
    },
    QUALITY_HIGH: {
        "bitrate": "5000k", "crf": 19, "pix_fmt": "yuv420p",
        "nvenc_cq": 20, "amf_quality": 50, "qsv_quality": 20, "videotoolbox_q": 70,
    },
    QUALITY_VERY_HIGH: {
        "bitrate": "8000k", "crf": 16, "pix_fmt": "yuv444p",
        "nvenc_cq": 17, "amf_quality": 60, "qsv_quality": 17, "videotoolbox_q": 80,
    },
}

# Most hardware encoders only accept 4:2:0 input.
HARDWARE_PIXEL_FORMAT = "yuv420p"
HARDWARE_UNSUPPORTED_PIXEL_FORMATS = ("yuv444p",)

# --- Scaling Settings ---
SCALE_FLAGS = "lanczos"
# -2 keeps the aspect ratio and rounds to an even size.
SCALE_KEEP_ASPECT = -2

# --- Encoder Diagnostics ---
# Substrings in encoder stderr that mean the hardware path is unavailable or that
# the encoder fell back to software. Logged only.
HARDWARE_FALLBACK_MARKERS = (
    "no nvenc capable devices found",
    "cannot load nvcuda",
    "cannot load libcuda",
    "openencodesessionex failed",
    "failed to initialise vaapi",
    "error creating a mfx session",
    "failed to create d3d11va",
    "amf failed to initialise",
    "cannot create compression session",
    "unknown encoder",
    "falling back to software",
)
