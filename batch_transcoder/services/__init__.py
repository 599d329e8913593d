"""
Services Package for the Batch Transcoder Application.

This package contains the "service layer" of the application. Each service performs
one step of running a transcode job, between the session (which decides what runs
and when) and the domain models (what is being converted).

- **Plan Resolver (`plan_resolver.resolve`):**
  Turns a probed file, the user's intent and the detected hardware into a concrete
  `EncodingPlan`. It never fails; unsupported choices are replaced.

- **Command Builder (`command_builder`):**
  Renders a plan as an ffmpeg argument list with machine-readable progress output.

- **Encoder Process (`EncoderProcess`):**
  Starts one ffmpeg run and reports its progress, diagnostics and end as events.

- **Process Manager (`TaskProcessManager`) and suspenders:**
  Keep the process of each active task and pause/continue it with the platform's
  suspend strategy, restarting a job whose process has gone.

- **Job Driver (`JobDriver`):**
  The per-task state machine. It starts jobs and turns process events into task
  state and task events, suppressing events while a task is paused.

- **Hardware detection, output naming, file discovery:**
  Helpers used when a session is created or a file is added.

- **Logging Service (`SuccessLog`, `ErrorLog`):**
  Per-job log files (structured YAML for successes, plain text for errors), separate
  from the real-time console logging.
"""
