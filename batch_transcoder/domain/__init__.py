"""
This package contains the core domain models of the Batch Transcoder.

The domain layer represents the concepts the orchestration core works with: the
probed input file, the user's encoding intent, the resolved encoder plan, the task
record and the events that flow between encoder processes and listeners. It does
not start processes or touch scheduler state.

Modules:
    exceptions.py: Defines custom exception types raised at the session boundary
                   (bad input files, unknown task ids, forbidden removals).
    media.py: Contains `MediaDescriptor`, the immutable description of an input
              file, and `probe_media`, which builds it by wrapping `ffprobe`.
    models.py: Defines `EncodingIntent`, `EncodingPlan`, `HardwareProfile`,
               `Task` and the `BatchState` snapshot.
    events.py: Defines the process events produced by encoder reader threads and
               the task events delivered to listeners.
"""
