from unittest.mock import patch

import yaml
import pytest

from batch_transcoder.domain.events import ProcessDiagnostic, ProcessProgress
from batch_transcoder.domain.exceptions import EncoderLaunchException
from batch_transcoder.domain.models import EncodingIntent, HardwareProfile, Task
from batch_transcoder.services.job_driver import JobDriver
from batch_transcoder.services.process_manager import TaskProcessManager
from tests.conftest import make_video


class DriverHarness:
    """A driver whose process events are queued and applied on `pump()`."""

    def __init__(self, tmp_path, process_factory, suspender, write_job_logs=False):
        self.tmp_path = tmp_path
        self.process_factory = process_factory
        self.suspender = suspender
        self.process_events = []
        self.emitted = []
        self.finished = []
        self.manager = TaskProcessManager(suspender)
        self.driver = JobDriver(
            self.manager,
            HardwareProfile(),
            self.process_events.append,
            self.emitted.append,
            self.finished.append,
            process_factory=process_factory,
            write_job_logs=write_job_logs,
        )

    def make_task(self, name="clip.mkv", **intent_values) -> Task:
        source = self.tmp_path / name
        return Task(
            input_path=source,
            output_path=self.tmp_path / "out" / "clip.mp4",
            descriptor=make_video(source),
            intent=EncodingIntent(container="mp4", **intent_values),
        )

    def pump(self):
        while self.process_events:
            self.driver.handle_event(self.process_events.pop(0))

    def kinds(self):
        return [e.kind for e in self.emitted]


@pytest.fixture
def harness(tmp_path, process_factory, suspender):
    return DriverHarness(tmp_path, process_factory, suspender)


@pytest.fixture
def running(harness):
    """A started task and its process."""
    task = harness.make_task()
    harness.driver.start(task)
    harness.pump()
    return task, harness.process_factory.for_task(task.id)


class TestStart:
    def test_start_emits_pending_then_started(self, harness):
        """Starting a task launches its encoder and emits pending, started."""
        task = harness.make_task()
        assert harness.driver.start(task)
        assert harness.kinds() == ["pending", "started"]
        assert task.is_processing
        assert task.plan.video_encoder == "libx264"
        assert (harness.tmp_path / "out").is_dir()

        process = harness.process_factory.for_task(task.id)
        assert process.command[0] == "ffmpeg"
        assert str(task.input_path) in process.command
        assert process.command[-1] == str(task.output_path)
        assert process.duration == task.descriptor.duration
        assert harness.manager.get_record(task.id).process_id == process.pid

    def test_start_freezes_the_intent(self, harness):
        """The running job keeps an immutable copy of the intent."""
        task = harness.make_task()
        original = task.intent
        harness.driver.start(task)
        original.video_bitrate = "9000k"
        assert task.intent.is_frozen
        assert task.intent.video_bitrate is None
        with pytest.raises(AttributeError):
            task.intent.video_bitrate = "1000k"

    def test_only_ready_tasks_start(self, running, harness):
        """A task that is already processing is not started again."""
        task, _ = running
        assert not harness.driver.start(task)
        assert len(harness.process_factory.processes) == 1

    def test_launch_failure_ends_in_error(self, harness):
        """An encoder that cannot be launched fails the task like any encoder error."""
        harness.process_factory.launch_error = EncoderLaunchException("ffmpeg not found")
        task = harness.make_task()
        assert not harness.driver.start(task)
        assert harness.kinds() == ["pending", "error", "finished"]
        assert task.status == "error"
        assert harness.emitted[-1].error
        assert harness.finished == [task]
        assert harness.manager.get_record(task.id) is None


class TestProgressAndEnd:
    def test_progress_is_monotonic(self, running, harness):
        """Progress only moves forward."""
        task, process = running
        for percent in (10.0, 30.0, 20.0, 30.0, 45.5):
            process.report_progress(percent)
        harness.pump()
        progress = [e.progress for e in harness.emitted if e.kind == "progress"]
        assert progress == [10.0, 30.0, 45.5]
        assert task.progress == 45.5
        assert harness.manager.get_record(task.id).last_progress == 45.5

    def test_completion_order(self, running, harness):
        """A normal end emits progress 100, complete, finished."""
        task, process = running
        process.finish()
        harness.pump()
        assert harness.kinds()[-3:] == ["progress", "complete", "finished"]
        assert harness.emitted[-3].progress == 100.0
        assert harness.emitted[-1].output_path == task.output_path
        assert not harness.emitted[-1].error
        assert task.status == "complete"
        assert harness.finished == [task]
        assert harness.manager.get_record(task.id) is None

    def test_failure_order(self, running, harness):
        """An error end emits error, finished with the error flag."""
        task, process = running
        process.fail("ffmpeg exited with code 1: Invalid argument")
        harness.pump()
        assert harness.kinds()[-2:] == ["error", "finished"]
        assert harness.emitted[-1].error
        assert task.status == "error"
        assert task.error_message == "ffmpeg exited with code 1: Invalid argument"

    def test_events_after_finish_are_dropped(self, running, harness):
        """A finished task ignores anything its process still reports."""
        task, process = running
        process.finish()
        harness.pump()
        count = len(harness.emitted)
        process.report_progress(50.0)
        process.fail()
        harness.pump()
        assert len(harness.emitted) == count
        assert harness.finished == [task]

    def test_stale_pid_dropped(self, running, harness):
        """Events from another process id are ignored."""
        task, process = running
        harness.driver.handle_event(ProcessProgress(task.id, process.pid + 1, percent=80.0))
        assert "progress" not in harness.kinds()

    def test_diagnostics_are_only_logged(self, running, harness):
        """Encoder diagnostics never change the task."""
        task, process = running
        harness.driver.handle_event(ProcessDiagnostic(task.id, process.pid, message="unknown encoder"))
        assert harness.kinds() == ["pending", "started"]
        assert task.is_processing


class TestPauseResume:
    def test_pause_and_resume_events(self, running, harness):
        """Pause and resume each emit one event and call the strategy once."""
        task, process = running
        assert harness.driver.pause(task.id)
        assert task.paused
        assert harness.driver.resume(task.id)
        assert not task.paused
        assert harness.kinds()[-2:] == ["paused", "resumed"]
        assert harness.suspender.calls == [("suspend", process.pid), ("resume", process.pid)]

    def test_events_suppressed_while_paused(self, running, harness):
        """Progress and end events of a paused task are dropped."""
        task, process = running
        harness.driver.pause(task.id)
        process.report_progress(50.0)
        process.finish()
        harness.pump()
        assert harness.kinds()[-1] == "paused"
        assert task.is_processing
        assert task.paused
        assert harness.finished == []

    def test_resume_after_suppressed_end_restarts(self, running, harness):
        """A process that ended while paused is started again on resume."""
        task, process = running
        process.report_progress(40.0)
        harness.pump()
        harness.driver.pause(task.id)
        process.finish()
        harness.pump()

        assert harness.driver.resume(task.id)
        second = harness.process_factory.for_task(task.id)
        assert second is not process
        assert task.progress == 0.0
        assert harness.manager.get_record(task.id).process_id == second.pid

        process.report_progress(90.0)
        second.report_progress(5.0)
        second.finish()
        harness.pump()
        assert [e.progress for e in harness.emitted if e.kind == "progress"][-2:] == [5.0, 100.0]
        assert task.status == "complete"

    def test_failed_suspend_emits_nothing(self, running, harness):
        """A pause the OS rejects changes nothing."""
        task, _ = running
        harness.suspender.suspend_result = False
        assert not harness.driver.pause(task.id)
        assert not task.paused
        assert "paused" not in harness.kinds()

    def test_cannot_pause_twice_or_resume_running(self, running, harness):
        """Pause and resume only apply in their source state."""
        task, _ = running
        assert not harness.driver.resume(task.id)
        harness.driver.pause(task.id)
        assert not harness.driver.pause(task.id)
        assert not harness.driver.pause("missing")

    def test_restart_launch_failure_ends_task(self, running, harness):
        """A restart that cannot launch ends the task in error."""
        task, process = running
        harness.driver.pause(task.id)
        process.exit_silently()
        harness.process_factory.launch_error = OSError("disk gone")
        assert not harness.driver.resume(task.id)
        assert task.status == "error"
        assert not task.paused
        assert harness.kinds()[-2:] == ["error", "finished"]


class TestShutdownAndAbandon:
    def test_shutdown_terminates_running_processes(self, harness):
        """Every live encoder is terminated; paused ones are continued first."""
        first, second = harness.make_task("a.mkv"), harness.make_task("b.mkv")
        harness.driver.start(first)
        harness.driver.start(second)
        harness.driver.pause(second.id)
        harness.driver.shutdown()
        assert all(p.terminated for p in harness.process_factory.processes)
        assert harness.suspender.calls[-1][0] == "resume"

    def test_abandon_paused_task(self, running, harness):
        """Abandoning drops the record and stops the process without task events."""
        task, process = running
        harness.driver.pause(task.id)
        count = len(harness.emitted)
        harness.driver.abandon(task.id)
        assert process.terminated
        assert harness.manager.get_record(task.id) is None
        assert len(harness.emitted) == count


class TestJobLogs:
    def test_success_log(self, tmp_path, process_factory, suspender):
        """Completed jobs are recorded in a YAML log next to the output."""
        harness = DriverHarness(tmp_path, process_factory, suspender, write_job_logs=True)
        task = harness.make_task()
        harness.driver.start(task)
        harness.process_factory.for_task(task.id).finish()
        harness.pump()
        logs = list((tmp_path / "out").glob("log_*.yaml"))
        assert len(logs) == 1
        entries = yaml.safe_load(logs[0].read_text(encoding="utf-8"))
        assert entries[0]["input_file"] == str(task.input_path)
        assert entries[0]["video_encoder"] == "libx264"

    def test_error_log(self, tmp_path, process_factory, suspender):
        """Failed jobs get an error log with the command and the stderr tail."""
        harness = DriverHarness(tmp_path, process_factory, suspender, write_job_logs=True)
        task = harness.make_task()
        harness.driver.start(task)
        harness.process_factory.for_task(task.id).fail("ffmpeg exited with code 1: boom")
        harness.pump()
        content = (tmp_path / "out" / "transcode_error" / "error.txt").read_text(encoding="utf-8")
        assert "boom" in content
        assert "Command: ffmpeg" in content

    def test_unwritable_error_log_still_frees_the_slot(self, tmp_path, process_factory, suspender):
        """A failed job whose error log cannot be created still ends and is reported finished."""
        harness = DriverHarness(tmp_path, process_factory, suspender, write_job_logs=True)
        task = harness.make_task()
        harness.driver.start(task)
        (tmp_path / "out" / "transcode_error").write_text("not a directory", encoding="utf-8")
        harness.process_factory.for_task(task.id).fail("ffmpeg exited with code 1: boom")
        harness.pump()
        assert task.status == "error"
        assert harness.finished == [task]
        assert harness.manager.get_record(task.id) is None

    def test_unwritable_success_log_still_completes(self, tmp_path, process_factory, suspender):
        """A completed job whose success log cannot be written is still complete and finished."""
        harness = DriverHarness(tmp_path, process_factory, suspender, write_job_logs=True)
        task = harness.make_task()
        harness.driver.start(task)
        harness.process_factory.for_task(task.id).finish()
        with patch("batch_transcoder.services.job_driver.SuccessLog", side_effect=PermissionError("denied")):
            harness.pump()
        assert task.status == "complete"
        assert harness.kinds()[-2:] == ["complete", "finished"]
        assert harness.finished == [task]
