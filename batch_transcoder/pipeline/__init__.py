"""
This package contains the batch layer of the Batch Transcoder application.

`BatchScheduler` admits queued tasks up to a concurrency limit, one scheduler per
task class. `TranscodeSession` owns the schedulers, the process manager, the Job
Driver and the event queue, and is the interface used by front ends.
"""
