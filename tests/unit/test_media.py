from pathlib import Path
from unittest.mock import patch

import ffmpeg
import pytest

from batch_transcoder.domain.exceptions import MediaProbeException, UnsupportedMediaException
from batch_transcoder.domain.media import (
    descriptor_from_probe,
    normalize_codec,
    parse_duration,
    parse_frame_rate,
    probe_media,
)

VIDEO_PROBE = {
    "streams": [
        {
            "codec_type": "video", "codec_name": "H264", "width": 1920, "height": 1080,
            "r_frame_rate": "30000/1001", "bit_rate": "8000000", "pix_fmt": "yuv420p",
        },
        {"codec_type": "audio", "codec_name": "aac", "sample_rate": "48000", "channels": 2, "bit_rate": "192000"},
    ],
    "format": {"duration": "125.5"},
}

AUDIO_WITH_COVER_PROBE = {
    "streams": [
        {"codec_type": "audio", "codec_name": "mp3", "sample_rate": "44100", "channels": 2},
        {"codec_type": "video", "codec_name": "mjpeg", "width": 500, "height": 500},
    ],
    "format": {"duration": "200"},
}


class TestParsing:
    @pytest.mark.parametrize(
        "value, expected",
        [("3600.5", 3600.5), ("01:00:00.500", 3600.5), ("02:30", 150.0), ("bad", 0.0), (None, 0.0)],
    )
    def test_parse_duration(self, value, expected):
        """Durations are read as seconds or timecodes."""
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "value, expected", [("30/1", 30.0), ("24000/1001", 23.976), ("25", 25.0), ("0/0", 0.0), (None, 0.0)]
    )
    def test_parse_frame_rate(self, value, expected):
        """Frame rates are read from ffprobe's fraction form."""
        assert parse_frame_rate(value) == pytest.approx(expected, rel=1e-3)

    @pytest.mark.parametrize(
        "value, expected",
        [("H265", "hevc"), (" libx264 ", "h264"), ("avc", "h264"), ("vp9", "vp9"), ("av1", "av1"), ("", None), (None, None)],
    )
    def test_normalize_codec(self, value, expected):
        """Codec names are lowercased and aliases map to the base codec."""
        assert normalize_codec(value) == expected


class TestDescriptorFromProbe:
    def test_video_file(self):
        """Video and audio stream properties are copied into the descriptor."""
        media = descriptor_from_probe(Path("/videos/clip.MKV"), VIDEO_PROBE)
        assert media.container == "mkv"
        assert media.video_codec == "h264"
        assert (media.width, media.height) == (1920, 1080)
        assert media.frame_rate == pytest.approx(29.97, rel=1e-3)
        assert media.video_bitrate == 8_000_000
        assert media.sample_rate == 48000
        assert media.duration == pytest.approx(125.5)
        assert media.is_video and not media.is_audio
        assert media.stem == "clip"

    def test_cover_art_is_not_video(self):
        """An attached picture does not turn an audio file into a video."""
        media = descriptor_from_probe(Path("song.mp3"), AUDIO_WITH_COVER_PROBE)
        assert not media.has_video
        assert media.is_audio
        assert media.video_codec == ""

    def test_stream_duration_fallback(self):
        """The stream duration is used when the format has none."""
        probe = {"streams": [{"codec_type": "audio", "codec_name": "flac", "duration": "42.0"}], "format": {}}
        assert descriptor_from_probe(Path("a.flac"), probe).duration == pytest.approx(42.0)


class TestProbeMedia:
    def test_missing_file(self, tmp_path):
        """A file that does not exist is reported before ffprobe runs."""
        with pytest.raises(FileNotFoundError):
            probe_media(tmp_path / "missing.mp4")

    def test_probe_success(self, tmp_path):
        """The probe result becomes a descriptor."""
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"")
        with patch("batch_transcoder.domain.media.ffmpeg.probe", return_value=VIDEO_PROBE) as probe:
            media = probe_media(source, ffprobe_cmd="/opt/ffprobe")
        probe.assert_called_once_with(str(source.resolve()), cmd="/opt/ffprobe")
        assert media.path == source.resolve()
        assert media.container == "mp4"

    def test_probe_error(self, tmp_path):
        """ffprobe failures are raised as MediaProbeException."""
        source = tmp_path / "broken.mp4"
        source.write_bytes(b"")
        error = ffmpeg.Error("ffprobe", b"", b"Invalid data found")
        with patch("batch_transcoder.domain.media.ffmpeg.probe", side_effect=error):
            with pytest.raises(MediaProbeException, match="Invalid data found"):
                probe_media(source)

    def test_ffprobe_not_installed(self, tmp_path):
        """A missing ffprobe executable is a probe failure, not a missing input."""
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"")
        with patch("batch_transcoder.domain.media.ffmpeg.probe", side_effect=FileNotFoundError):
            with pytest.raises(MediaProbeException):
                probe_media(source)

    def test_no_streams(self, tmp_path):
        """A file without video or audio is unsupported."""
        source = tmp_path / "data.mp4"
        source.write_bytes(b"")
        with patch("batch_transcoder.domain.media.ffmpeg.probe", return_value={"streams": [], "format": {}}):
            with pytest.raises(UnsupportedMediaException):
                probe_media(source)
