"""
Discovers media files to add to a session.

Inputs can be files or directories. Directories are scanned (recursively by
default) for known video and audio extensions. The output directory and the
error-log directories are skipped so converted files are never picked up again.
"""

from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger

from ..config.audio import AUDIO_EXTENSIONS
from ..config.common import ERROR_LOG_DIR_NAME
from ..config.video import VIDEO_EXTENSIONS

MEDIA_EXTENSIONS = tuple(VIDEO_EXTENSIONS) + tuple(AUDIO_EXTENSIONS)


def is_media_file(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in MEDIA_EXTENSIONS


def _is_excluded(path: Path, excluded_dirs: List[Path]) -> bool:
    if ERROR_LOG_DIR_NAME in path.parts:
        return True
    return any(excluded == path or excluded in path.parents for excluded in excluded_dirs)


def discover_media_files(
    inputs: Iterable[Path],
    recursive: bool = True,
    exclude_dirs: Optional[Iterable[Path]] = None,
) -> List[Path]:
    """
    Expands files and directories into a sorted, de-duplicated list of media files.

    Args:
        inputs: Files and/or directories.
        recursive: Scan sub-directories of directory inputs.
        exclude_dirs: Directories whose contents are never returned.

    Returns:
        Absolute paths of the media files found.
    """
    excluded = [p.resolve() for p in (exclude_dirs or [])]
    found: List[Path] = []
    seen = set()

    for input_path in inputs:
        input_path = Path(input_path).expanduser().resolve()
        if input_path.is_file():
            candidates = [input_path]
        elif input_path.is_dir():
            pattern_iter = input_path.rglob("*") if recursive else input_path.glob("*")
            candidates = sorted(pattern_iter)
        else:
            logger.warning(f"Input '{input_path}' does not exist. Skipping.")
            continue

        for candidate in candidates:
            if candidate in seen or not is_media_file(candidate):
                continue
            if _is_excluded(candidate, excluded):
                continue
            seen.add(candidate)
            found.append(candidate)

    logger.debug(f"Discovered {len(found)} media file(s).")
    return found
