"""
Configuration Package for the Batch Transcoder.

This package centralizes the static configuration settings for the application.
Separating configuration from the orchestration logic keeps the resolver tables,
status names and user settings in one place.

This package includes settings for:
- Logging format and job log locations.
- Task and batch status names.
- The persisted user settings (output directory, parallel-task limit, hardware
  codec preference, output file naming) loaded from `config.user.yaml`.
- Video tables: container/codec support, quality tiers, hardware encoder suffixes.
- Audio tables: per-container defaults and the bitrate clamp.
"""
