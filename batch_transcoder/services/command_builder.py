"""
Builds ffmpeg command lines from a resolved `EncodingPlan`.

Keeping command construction separate from process handling means the exact
command can be logged before it runs and the flag generation can be tested
without starting any process.

The command structure is:
    ffmpeg -hide_banner -y -i <input>
      -nostats -progress pipe:1     (machine-readable key=value progress on stdout)
      <video arguments>             (or -c:v copy / -vn)
      <audio arguments>             (or -c:a copy / -an)
      <output>
"""

from pathlib import Path
from typing import List

from ..domain.models import EncodingPlan


def _format_number(value: float) -> str:
    """30.0 -> '30', 29.97 -> '29.97'."""
    return f"{value:g}"


def build_video_arguments(plan: EncodingPlan) -> List[str]:
    """
    Builds the video part of the command.

    Software paths get -crf; hardware paths get their own rate-control arguments.
    -b:v is emitted on every path whenever the plan carries a bitrate.
    """
    if plan.audio_only:
        return ["-vn"]
    if plan.stream_copy:
        return ["-c:v", "copy"]

    args: List[str] = []
    if plan.video_encoder:
        args += ["-c:v", plan.video_encoder]
    if plan.crf is not None:
        args += ["-crf", str(plan.crf)]
    args += list(plan.quality_args)
    if plan.video_bitrate:
        args += ["-b:v", plan.video_bitrate]
    if plan.scale_filter:
        args += ["-vf", plan.scale_filter]
    if plan.fps:
        args += ["-r", _format_number(plan.fps)]
    if plan.preset:
        args += ["-preset", plan.preset]
    if plan.tune:
        args += ["-tune", plan.tune]
    if plan.profile:
        args += ["-profile:v", plan.profile]
    if plan.level:
        args += ["-level", plan.level]
    if plan.pixel_format:
        args += ["-pix_fmt", plan.pixel_format]
    return args


def build_audio_arguments(plan: EncodingPlan) -> List[str]:
    """Builds the audio part of the command."""
    if plan.no_audio and not plan.audio_only:
        return ["-an"]
    if plan.stream_copy:
        return ["-c:a", "copy"]

    args: List[str] = []
    if plan.audio_codec:
        args += ["-c:a", plan.audio_codec]
    if plan.audio_bitrate:
        args += ["-b:a", plan.audio_bitrate]
    if plan.audio_sample_rate:
        args += ["-ar", str(plan.audio_sample_rate)]
    if plan.audio_channels:
        args += ["-ac", str(plan.audio_channels)]
    return args


def build_encoder_arguments(plan: EncodingPlan) -> List[str]:
    """
    The codec-related arguments of a plan, without input, output or progress flags.

    Example for a software medium-tier mp4 plan:
        ['-c:v', 'libx264', '-crf', '23', '-b:v', '2000k', '-pix_fmt', 'yuv420p',
         '-c:a', 'aac', '-b:a', '192k', '-ac', '2']
    """
    return build_video_arguments(plan) + build_audio_arguments(plan)


def build_transcode_command(
    ffmpeg_cmd: str, plan: EncodingPlan, input_file: Path, output_file: Path
) -> List[str]:
    """
    Builds the full ffmpeg command for transcoding one file.

    Args:
        ffmpeg_cmd: The ffmpeg executable.
        plan: The resolved plan.
        input_file: The source file.
        output_file: The file to write. It is overwritten if it exists.

    Returns:
        The command as a list of arguments.
    """
    return [
        ffmpeg_cmd,
        "-hide_banner",
        "-y",
        "-i", str(input_file),
        "-nostats",
        "-progress", "pipe:1",
        *build_encoder_arguments(plan),
        str(output_file),
    ]
