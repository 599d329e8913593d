"""
The Batch Transcoder package.

The application is split into layers, from the bottom up:

    config/     static tables (containers, codecs, quality tiers) and user settings
    domain/     media descriptors, intents, plans, tasks, events and exceptions
    utils/      command running, ffmpeg progress parsing and value formatting
    services/   plan resolution, command building, encoder processes, pausing,
                the Job Driver and hardware detection
    pipeline/   the Batch Scheduler and the TranscodeSession that ties it together

Front ends (the command line in `main.py`, or any other) only talk to
`pipeline.transcode_session.TranscodeSession`.
"""
