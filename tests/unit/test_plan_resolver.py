import pytest

from batch_transcoder.config.video import CONTAINER_CODEC_SUPPORT, KNOWN_VIDEO_CODECS, QUALITY_TIER_ORDER, QUALITY_TIERS
from batch_transcoder.domain.models import EncodingIntent, HardwareProfile
from batch_transcoder.services import plan_resolver
from batch_transcoder.services.plan_resolver import (
    clamp_audio_bitrate,
    is_stream_copy_eligible,
    resolve,
    select_codec,
)
from tests.conftest import make_audio, make_video

SOFTWARE = HardwareProfile(gpu_vendor="unknown", os_family="linux")
NVIDIA = HardwareProfile(gpu_vendor="NVIDIA", os_family="windows")
MAC = HardwareProfile(gpu_vendor="Apple", os_family="macos")


class TestCodecSelection:
    @pytest.mark.parametrize("container", sorted(CONTAINER_CODEC_SUPPORT))
    @pytest.mark.parametrize("codec", KNOWN_VIDEO_CODECS + (None, "mpeg2video"))
    def test_codec_is_always_allowed_in_container(self, container, codec):
        """Whatever the user asks for, the chosen codec is one the container can carry."""
        assert select_codec(container, codec) in CONTAINER_CODEC_SUPPORT[container]

    @pytest.mark.parametrize("container", ["avi", "flv"])
    def test_hevc_falls_back_to_h264(self, container):
        """HEVC in AVI or FLV becomes H.264."""
        assert select_codec(container, "hevc") == "h264"

    def test_webm_forces_vp9(self):
        """WebM only carries VP9."""
        plan = resolve(make_video("a.mp4"), EncodingIntent(container="webm", video_codec="h264"), SOFTWARE)
        assert plan.codec == "vp9"
        assert plan.video_encoder == "libvpx-vp9"

    def test_unset_codec_follows_source(self):
        """No codec requested keeps the source's known codec."""
        assert select_codec("mkv", None, "hevc") == "hevc"

    def test_unknown_source_codec_defaults_to_h264(self):
        """An unrecognised source codec falls back to H.264."""
        assert select_codec("mkv", None, "mpeg4") == "h264"

    def test_codec_aliases(self):
        """Common spellings of a codec are understood."""
        assert select_codec("mp4", "x265") == "hevc"
        assert select_codec("mp4", "libx264") == "h264"


class TestRateControl:
    @pytest.mark.parametrize("tier", QUALITY_TIER_ORDER)
    def test_tier_bitrate_is_the_floor(self, tier):
        """Without a user bitrate, every tier sets its floor and CRF on software."""
        plan = resolve(make_video("a.mp4"), EncodingIntent(container="mp4", quality_tier=tier), SOFTWARE)
        assert plan.video_bitrate == QUALITY_TIERS[tier]["bitrate"]
        assert plan.crf == QUALITY_TIERS[tier]["crf"]

    def test_user_bitrate_wins_over_tier(self):
        """An explicit bitrate replaces the tier floor."""
        intent = EncodingIntent(container="mp4", quality_tier="low", video_bitrate="3000k")
        assert resolve(make_video("a.mp4"), intent, SOFTWARE).video_bitrate == "3000k"

    def test_very_high_mkv_4k(self):
        """A 4K source at very_high in MKV gets the top-tier floor and 4:4:4 chroma."""
        media = make_video("movie.mkv", width=3840, height=2160)
        plan = resolve(media, EncodingIntent(container="mkv", quality_tier="very_high"), SOFTWARE)
        assert plan.codec == "h264"
        assert plan.video_encoder == "libx264"
        assert plan.video_bitrate == "8000k"
        assert plan.pixel_format == "yuv444p"
        assert plan.crf == 16
        assert plan.scale_filter is None

    def test_user_pixel_format_wins(self):
        """A pinned pixel format is kept over the tier hint."""
        intent = EncodingIntent(container="mkv", quality_tier="very_high", pixel_format="yuv420p10le")
        assert resolve(make_video(), intent, SOFTWARE).pixel_format == "yuv420p10le"

    def test_unknown_tier_uses_default(self):
        """An unrecognised tier name behaves like the default tier."""
        plan = resolve(make_video("a.mp4"), EncodingIntent(container="mp4", quality_tier="ultra"), SOFTWARE)
        assert plan.video_bitrate == QUALITY_TIERS["medium"]["bitrate"]

    def test_original_tier_sets_no_rate_control(self):
        """The "original" tier re-encodes without tier values."""
        plan = resolve(make_video("a.mkv"), EncodingIntent(container="mp4", quality_tier="original"), SOFTWARE)
        assert not plan.stream_copy
        assert plan.crf is None
        assert plan.video_bitrate is None
        assert plan.pixel_format is None

    def test_passthrough_options(self):
        """Preset, tune, profile, level and fps are copied to the plan."""
        intent = EncodingIntent(
            container="mp4", preset="slow", tune="film", profile="high", level="4.1", fps=24.0
        )
        plan = resolve(make_video("a.mp4"), intent, SOFTWARE)
        assert (plan.preset, plan.tune, plan.profile, plan.level, plan.fps) == (
            "slow", "film", "high", "4.1", 24.0,
        )


class TestHardwarePaths:
    def test_nvidia_uses_nvenc(self):
        """The detected NVIDIA GPU selects the NVENC encoder and its quality arguments."""
        intent = EncodingIntent(container="mp4", video_codec="hevc", codec_type="GPU")
        plan = resolve(make_video("a.mp4"), intent, NVIDIA)
        assert plan.hardware
        assert plan.video_encoder == "hevc_nvenc"
        assert plan.crf is None
        assert plan.quality_args == ("-rc", "vbr", "-cq", str(QUALITY_TIERS["medium"]["nvenc_cq"]))
        assert plan.video_bitrate == QUALITY_TIERS["medium"]["bitrate"]

    @pytest.mark.parametrize(
        "method, encoder",
        [("amf", "h264_amf"), ("AMD", "h264_amf"), ("qsv", "h264_qsv"), ("intel", "h264_qsv")],
    )
    def test_method_string_wins_over_detected_vendor(self, method, encoder):
        """The user's method string picks the vendor."""
        intent = EncodingIntent(container="mp4", video_codec="h264", codec_type="GPU", codec_method=method)
        assert resolve(make_video("a.mp4"), intent, NVIDIA).video_encoder == encoder

    def test_macos_always_uses_videotoolbox(self):
        """On macOS the hardware path is VideoToolbox regardless of the method string."""
        intent = EncodingIntent(container="mp4", codec_type="GPU", codec_method="nvenc")
        plan = resolve(make_video("a.mp4"), intent, MAC)
        assert plan.video_encoder == "h264_videotoolbox"
        assert plan.quality_args[0] == "-q:v"

    def test_unknown_vendor_uses_software(self):
        """GPU requested but no known vendor falls back to the software encoder."""
        intent = EncodingIntent(container="mp4", codec_type="GPU")
        plan = resolve(make_video("a.mp4"), intent, SOFTWARE)
        assert not plan.hardware
        assert plan.video_encoder == "libx264"
        assert plan.crf is not None

    def test_vp9_has_no_hardware_path(self):
        """VP9 is always encoded in software."""
        intent = EncodingIntent(container="webm", codec_type="GPU")
        assert resolve(make_video("a.mp4"), intent, NVIDIA).video_encoder == "libvpx-vp9"

    def test_hardware_downgrades_444(self):
        """Hardware encoders get 4:2:0 instead of the very_high 4:4:4 hint."""
        intent = EncodingIntent(container="mkv", quality_tier="very_high", codec_type="GPU")
        assert resolve(make_video(), intent, NVIDIA).pixel_format == "yuv420p"

    def test_cpu_ignores_gpu(self):
        """CPU mode never selects a hardware encoder."""
        intent = EncodingIntent(container="mp4", codec_type="CPU", codec_method="nvenc")
        assert not resolve(make_video("a.mp4"), intent, NVIDIA).hardware


class TestStreamCopy:
    def test_same_container_original_no_overrides(self):
        """Same container, original tier and no overrides is a plain re-mux."""
        media = make_video("a.mkv")
        intent = EncodingIntent(container="mkv", quality_tier="original")
        assert is_stream_copy_eligible(media, intent)
        plan = resolve(media, intent, SOFTWARE)
        assert plan.stream_copy
        assert plan.video_encoder is None

    def test_empty_container_means_source(self):
        """An unset container counts as the source container."""
        assert is_stream_copy_eligible(make_video("a.mkv"), EncodingIntent(quality_tier="original"))

    def test_codec_and_size_equal_to_source_are_not_overrides(self):
        """Asking for what the source already is keeps the copy path."""
        media = make_video("a.mkv")
        intent = EncodingIntent(quality_tier="original", video_codec="h264", width=1920, height=1080)
        assert is_stream_copy_eligible(media, intent)

    @pytest.mark.parametrize("requested", ["h265", "H265", "x265", "libx265", "HEVC"])
    def test_codec_alias_of_source_keeps_copy(self, requested):
        """Another name for the source codec is not an override."""
        media = make_video("a.mkv", video_codec="hevc")
        intent = EncodingIntent(container="mkv", quality_tier="original", video_codec=requested)
        plan = resolve(media, intent, SOFTWARE)
        assert plan.stream_copy
        assert plan.video_encoder is None

    @pytest.mark.parametrize(
        "intent",
        [
            EncodingIntent(container="mp4", quality_tier="original"),
            EncodingIntent(quality_tier="medium"),
            EncodingIntent(quality_tier="original", video_bitrate="1000k"),
            EncodingIntent(quality_tier="original", width=1280),
            EncodingIntent(quality_tier="original", video_codec="hevc"),
            EncodingIntent(quality_tier="original", audio_bitrate="128k"),
        ],
    )
    def test_not_eligible(self, intent):
        """Any change of container, tier, video or audio disables stream copy."""
        assert not is_stream_copy_eligible(make_video("a.mkv"), intent)

    def test_audio_override_ignored_when_audio_is_dropped(self):
        """Dropping audio makes audio overrides irrelevant."""
        intent = EncodingIntent(quality_tier="original", audio_bitrate="128k", no_audio=True)
        plan = resolve(make_video("a.mkv"), intent, SOFTWARE)
        assert plan.stream_copy
        assert plan.no_audio


class TestScaling:
    def test_missing_side_keeps_aspect(self):
        """Only a width given scales with the height derived."""
        plan = resolve(make_video("a.mp4"), EncodingIntent(container="mp4", width=1280), SOFTWARE)
        assert plan.scale_filter == "scale=1280:-2:flags=lanczos"

    def test_same_size_is_not_scaled(self):
        """The source size produces no scale filter."""
        intent = EncodingIntent(container="mp4", width=1920, height=1080)
        assert resolve(make_video("a.mp4"), intent, SOFTWARE).scale_filter is None


class TestAudio:
    def test_audio_source_gets_audio_plan(self):
        """Audio-only sources never get video settings."""
        plan = resolve(make_audio("a.flac"), EncodingIntent(container="mp3"), SOFTWARE)
        assert plan.audio_only
        assert plan.video_encoder is None
        assert plan.audio_codec == "libmp3lame"
        assert plan.audio_bitrate == "192k"

    def test_lossless_container_has_no_bitrate(self):
        """FLAC output carries no audio bitrate."""
        plan = resolve(make_audio("a.wav"), EncodingIntent(container="flac"), SOFTWARE)
        assert plan.audio_codec == "flac"
        assert plan.audio_bitrate is None

    def test_disallowed_codec_replaced_by_container_default(self):
        """A codec the container cannot carry is swapped for its default."""
        plan = resolve(make_audio("a.flac"), EncodingIntent(container="ogg", audio_codec="aac"), SOFTWARE)
        assert plan.audio_codec == "libvorbis"

    @pytest.mark.parametrize(
        "value, expected", [("8k", "32k"), ("2000k", "512k"), ("256k", "256k"), ("junk", "192k"), (None, "192k")]
    )
    def test_bitrate_clamp(self, value, expected):
        """Lossy bitrates are snapped into the supported range."""
        assert clamp_audio_bitrate(value) == expected

    def test_video_without_audio_track(self):
        """A silent source gets no audio settings."""
        plan = resolve(make_video("a.mp4", has_audio=False, audio_codec=""), EncodingIntent(container="mp4"), SOFTWARE)
        assert plan.audio_codec is None

    def test_no_audio_drops_audio(self):
        """no_audio leaves the audio settings empty."""
        plan = resolve(make_video("a.mp4"), EncodingIntent(container="mp4", no_audio=True), SOFTWARE)
        assert plan.no_audio
        assert plan.audio_codec is None

    def test_user_audio_settings(self):
        """User audio values are used as given."""
        intent = EncodingIntent(
            container="mp4", audio_codec="aac", audio_bitrate="128k", audio_sample_rate=44100, audio_channels=1
        )
        plan = resolve(make_video("a.mp4"), intent, SOFTWARE)
        assert (plan.audio_codec, plan.audio_bitrate, plan.audio_sample_rate, plan.audio_channels) == (
            "aac", "128k", 44100, 1,
        )


def test_resolve_does_not_modify_intent():
    """The resolver only reads the intent."""
    intent = EncodingIntent(container="webm", video_codec="h264").freeze()
    plan_resolver.resolve(make_video("a.mp4"), intent, SOFTWARE)
    assert intent.video_codec == "h264"
