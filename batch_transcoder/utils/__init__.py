"""
Utilities Package for the Batch Transcoder Application.

This package contains helper modules that provide common, reusable functionality
across the application. They are not specific to any single part of the
transcoding domain.

Modules:
    - ffmpeg_utils.py: Runs short helper commands (PowerShell, lspci, `ffmpeg -version`)
      and parses ffmpeg's `-progress` output into percentages.
    - format_utils.py: Formats and parses durations, file sizes and bitrates.
    - binaries.py: Locates the ffmpeg and ffprobe executables and verifies ffmpeg runs.
"""
