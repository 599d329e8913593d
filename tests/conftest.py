"""
Shared fakes and fixtures.

The fakes stand in for ffmpeg, ffprobe and the OS suspend call so the orchestration
core can be tested without any media binary installed.
"""

import itertools
from pathlib import Path
from typing import List, Optional

import pytest

from batch_transcoder.config.common import UserSettings
from batch_transcoder.config.video import VIDEO_EXTENSIONS
from batch_transcoder.domain.events import ProcessEnded, ProcessFailed, ProcessProgress, ProcessStarted
from batch_transcoder.domain.media import MediaDescriptor
from batch_transcoder.domain.models import HardwareProfile
from batch_transcoder.pipeline.transcode_session import TranscodeSession
from batch_transcoder.services.suspender import ProcessSuspender


class FakeEncoderProcess:
    """Behaves like EncoderProcess, but the test decides when it reports progress or ends."""

    _pids = itertools.count(1000)

    def __init__(self, task_id, command, duration, event_sink):
        self.task_id = task_id
        self.command = command
        self.duration = duration
        self.event_sink = event_sink
        self.pid: Optional[int] = None
        self.return_code: Optional[int] = None
        self.started = False
        self.terminated = False
        self.fail_to_launch = False

    def start(self) -> int:
        self.pid = next(self._pids)
        self.started = True
        self.event_sink(ProcessStarted(self.task_id, self.pid, command_line=" ".join(self.command)))
        return self.pid

    def poll(self):
        if not self.started:
            return -1
        return self.return_code

    def is_alive(self) -> bool:
        return self.started and self.return_code is None

    def terminate(self):
        self.terminated = True
        self.return_code = -15

    # --- Test controls ---
    def report_progress(self, percent: float):
        self.event_sink(ProcessProgress(self.task_id, self.pid, percent=percent))

    def finish(self):
        self.return_code = 0
        self.event_sink(ProcessEnded(self.task_id, self.pid, return_code=0))

    def fail(self, message: str = "ffmpeg exited with code 1: boom", return_code: int = 1):
        self.return_code = return_code
        self.event_sink(ProcessFailed(self.task_id, self.pid, message=message, return_code=return_code))

    def exit_silently(self, return_code: int = 0):
        """The process is gone but its end was never reported."""
        self.return_code = return_code


class FakeProcessFactory:
    """Records every process the driver creates."""

    def __init__(self):
        self.processes: List[FakeEncoderProcess] = []
        self.launch_error: Optional[Exception] = None

    def __call__(self, task_id, command, duration, event_sink):
        factory = self

        class _Process(FakeEncoderProcess):
            def start(self):
                if factory.launch_error is not None:
                    raise factory.launch_error
                return super().start()

        process = _Process(task_id, command, duration, event_sink)
        self.processes.append(process)
        return process

    def for_task(self, task_id: str) -> FakeEncoderProcess:
        """The latest process created for a task."""
        return [p for p in self.processes if p.task_id == task_id][-1]


class FakeSuspender(ProcessSuspender):
    name = "fake"

    def __init__(self, suspend_result: bool = True, resume_result: bool = True):
        self.suspend_result = suspend_result
        self.resume_result = resume_result
        self.calls = []

    def suspend(self, pid, handle) -> bool:
        self.calls.append(("suspend", pid))
        return self.suspend_result

    def resume(self, pid, handle) -> bool:
        self.calls.append(("resume", pid))
        return self.resume_result


def make_video(path="clip.mkv", **overrides) -> MediaDescriptor:
    values = dict(
        path=Path(path),
        container=Path(path).suffix.lstrip(".").lower(),
        video_codec="h264",
        audio_codec="aac",
        width=1920,
        height=1080,
        frame_rate=30.0,
        video_bitrate=8_000_000,
        pixel_format="yuv420p",
        sample_rate=48000,
        channels=2,
        audio_bitrate=192_000,
        duration=120.0,
        has_video=True,
        has_audio=True,
    )
    values.update(overrides)
    return MediaDescriptor(**values)


def make_audio(path="song.flac", **overrides) -> MediaDescriptor:
    values = dict(
        path=Path(path),
        container=Path(path).suffix.lstrip(".").lower(),
        audio_codec="flac",
        sample_rate=44100,
        channels=2,
        duration=200.0,
        has_audio=True,
    )
    values.update(overrides)
    return MediaDescriptor(**values)


def fake_prober(path: Path, ffprobe_cmd: str = "ffprobe") -> MediaDescriptor:
    if path.suffix.lower() in VIDEO_EXTENSIONS:
        return make_video(path)
    return make_audio(path)


@pytest.fixture
def process_factory():
    return FakeProcessFactory()


@pytest.fixture
def suspender():
    return FakeSuspender()


@pytest.fixture
def software_hardware():
    return HardwareProfile(gpu_vendor="unknown", os_family="linux")


@pytest.fixture
def session(tmp_path, process_factory, suspender, software_hardware):
    settings = UserSettings(output_dir=tmp_path / "out", parallel_tasks=2, write_job_logs=False)
    return TranscodeSession(
        settings,
        hardware=software_hardware,
        suspender=suspender,
        process_factory=process_factory,
        prober=fake_prober,
    )


@pytest.fixture
def recorded_events(session):
    events = []
    session.subscribe(events.append)
    return events
