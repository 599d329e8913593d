"""
Defines custom exception types for the Batch Transcoder.

These exceptions allow for more specific error handling at the boundary of the
orchestration core. Encoder runtime failures are never raised out of the event
loop; they become task-level error events. The exceptions below are for the
caller-facing operations: importing a file, addressing a task that does not
exist, or removing a task that is still encoding.

All custom exceptions inherit from the base `TranscoderException`.
"""


class TranscoderException(Exception):
    """Base class for all custom exceptions in the Batch Transcoder."""

    pass


# --- Media / Probe Specific Exceptions ---
class MediaFileException(TranscoderException):
    """Base class for exceptions related to media file analysis."""

    pass


class MediaProbeException(MediaFileException):
    """
    Raised when ffprobe cannot read a file.

    The message carries the probe's stderr so the caller can show why the file
    was rejected at import time.
    """

    pass


class UnsupportedMediaException(MediaFileException):
    """
    Raised when a probed file has neither a usable video stream nor an audio stream.
    """

    pass


# --- Encoder Process Exceptions ---
class EncoderLaunchException(TranscoderException):
    """
    Raised when the encoder executable cannot be started.

    The Job Driver converts this into a task error event; it is only visible to
    code that launches `EncoderProcess` directly.
    """

    pass


# --- Task Management Exceptions ---
class TaskException(TranscoderException):
    """Base class for exceptions about task bookkeeping."""

    pass


class UnknownTaskException(TaskException):
    """Raised when an operation names a task id the session does not know."""

    pass


class TaskBusyException(TaskException):
    """
    Raised when removing a task that is processing and not paused.

    There is no safe mid-stream cancellation, so such a removal is refused.
    """

    pass
