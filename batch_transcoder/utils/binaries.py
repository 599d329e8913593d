"""
This module provides the Binaries class to locate and verify the external tools
required by the application: `ffmpeg` and `ffprobe`.
"""
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .ffmpeg_utils import run_cmd


class Binaries:
    """
    Resolves the ffmpeg and ffprobe executables.

    A directory configured in `config.user.yaml` (`paths.ffmpeg_dir`) takes
    priority. If it is not set or does not contain the executable, the bare
    command name is used so the system's PATH decides.
    """

    def __init__(self, ffmpeg_dir: Optional[Path] = None):
        self.ffmpeg_dir = ffmpeg_dir

    def _resolve(self, tool_name: str) -> str:
        """
        Determines the executable path for one tool.

        Args:
            tool_name: "ffmpeg" or "ffprobe".

        Returns:
            An absolute path from the configured directory, or the bare tool name.
        """
        exe_name = f"{tool_name}.exe" if sys.platform == "win32" else tool_name

        if self.ffmpeg_dir and self.ffmpeg_dir.is_dir():
            configured_path = self.ffmpeg_dir / exe_name
            if configured_path.is_file():
                logger.debug(f"Using {tool_name} from configured path: '{configured_path}'")
                return str(configured_path)
            logger.warning(
                f"`ffmpeg_dir` is configured, but '{exe_name}' was not found there. Falling back to system PATH."
            )
        return tool_name

    @property
    def ffmpeg(self) -> str:
        return self._resolve("ffmpeg")

    @property
    def ffprobe(self) -> str:
        return self._resolve("ffprobe")

    def verify_ffmpeg(self) -> bool:
        """
        Verifies that FFmpeg is installed, accessible, and can be executed.

        Runs `ffmpeg -version` and logs the first line of its output. This is the
        startup check of the command-line entry point.

        Returns:
            True if the version command ran successfully.
        """
        result = run_cmd([self.ffmpeg, "-version"], timeout=30)
        if result is None:
            logger.error(
                "FFmpeg command not found. Please ensure FFmpeg is installed and accessible.\n"
                "You can either add it to your system's PATH or specify its location in the 'config.user.yaml' file."
            )
            return False
        if result.returncode != 0:
            logger.error(f"FFmpeg version command failed (return code {result.returncode}):\n{result.stderr}")
            return False

        version_output_lines = result.stdout.splitlines()
        first_line = version_output_lines[0] if version_output_lines else "(no output)"
        logger.info(f"FFmpeg version check successful: {first_line}")
        return True
