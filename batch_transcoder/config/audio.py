"""
Configuration settings related to audio processing.

This module defines the audio file extensions the application recognizes, the
default audio codec and bitrate per output container, and the bitrate clamp that
keeps bad probe data out of the encoder command line.
"""

# ======================================================================================
# Audio File Identification
# ======================================================================================

AUDIO_EXTENSIONS = (
    ".mp3", ".wav", ".wma", ".aac", ".flac", ".ogg", ".oga", ".opus", ".m4a", ".m4b",
)


# ======================================================================================
# Audio Encoding Parameters
# ======================================================================================

DEFAULT_AUDIO_CODEC = "aac"
DEFAULT_AUDIO_BITRATE = "192k"
DEFAULT_AUDIO_CHANNELS = 2

# Lossy bitrates outside this range are snapped to the nearest bound.
AUDIO_BITRATE_FLOOR = 32_000
AUDIO_BITRATE_CEILING = 512_000

# Codecs that carry no bitrate setting.
LOSSLESS_AUDIO_CODECS = ("flac", "pcm_s16le", "pcm_s24le", "alac")

# Per output container: the default codec, its default bitrate (None for lossless),
# and the codecs a user may pick instead. A user codec outside the allowed set is
# replaced by the default.
AUDIO_CONTAINER_DEFAULTS = {
    "mp3": {"codec": "libmp3lame", "bitrate": "192k", "allowed": ("libmp3lame", "mp3")},
    "m4a": {"codec": "aac", "bitrate": "192k", "allowed": ("aac", "libfdk_aac", "alac")},
    "aac": {"codec": "aac", "bitrate": "192k", "allowed": ("aac", "libfdk_aac")},
    "ogg": {
        "codec": "libvorbis",
        "bitrate": "160k",
        "allowed": ("libvorbis", "vorbis", "libopus", "opus"),
    },
    "opus": {"codec": "libopus", "bitrate": "128k", "allowed": ("libopus", "opus")},
    "webm": {
        "codec": "libopus",
        "bitrate": "128k",
        "allowed": ("libopus", "opus", "libvorbis", "vorbis"),
    },
    "flac": {"codec": "flac", "bitrate": None, "allowed": ("flac",)},
    "wav": {"codec": "pcm_s16le", "bitrate": None, "allowed": ("pcm_s16le", "pcm_s24le")},
    "avi": {"codec": "libmp3lame", "bitrate": "192k", "allowed": ("libmp3lame", "mp3", "aac")},
}

# Used for every container not listed above. None means any codec is accepted.
FALLBACK_AUDIO_DEFAULTS = {"codec": DEFAULT_AUDIO_CODEC, "bitrate": DEFAULT_AUDIO_BITRATE, "allowed": None}
