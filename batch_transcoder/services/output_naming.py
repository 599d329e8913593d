"""
Output file naming.

In "origin" mode the output keeps the source file's stem. In "custom" mode the
user's rule is rendered with these placeholders:

    {name}    the source stem                  e.g. "holiday"
    {ext}     the output extension with dot    e.g. ".mp4"
    {time}    today's date as YYYYMMDD         e.g. "20250520"
    {random}  eight random hex characters      e.g. "3f9a1c0b"

The output container's extension is appended when the rendered name does not
already end with it. A result equal to the input path gets a "_converted" suffix
so a source is never overwritten, and a result already taken by another task gets
a numbered suffix ("_1", "_2", ...).
"""

import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from ..config.common import FILE_NAME_MODE_CUSTOM

_PATH_SEPARATORS = re.compile(r"[\\/]+")
_REPEATED_DOTS = re.compile(r"\.{2,}")


def render_custom_name(
    rule: str,
    source_stem: str,
    extension: str,
    now: Optional[datetime] = None,
    random_token: Optional[str] = None,
) -> str:
    """
    Renders a custom name rule.

    Args:
        rule: The template, e.g. "{name}-{time}-{random}{ext}".
        source_stem: The input file name without its extension.
        extension: The output extension including the dot.
        now: The time used for {time}. Defaults to now.
        random_token: The value used for {random}. Defaults to a fresh token.

    Returns:
        The file name (no directory), always ending with `extension`.
    """
    now = now or datetime.now()
    random_token = random_token or uuid.uuid4().hex[:8]

    name = (
        rule.replace("{name}", source_stem)
        .replace("{ext}", extension)
        .replace("{time}", now.strftime("%Y%m%d"))
        .replace("{random}", random_token)
    )
    name = _PATH_SEPARATORS.sub("_", name).strip()
    name = _REPEATED_DOTS.sub(".", name)

    if not name or name == extension:
        name = source_stem + extension
    if not name.lower().endswith(extension.lower()):
        name += extension
    return name


def build_output_path(
    input_path: Path,
    container: str,
    output_dir: Path,
    file_name_mode: str = "origin",
    custom_name_rule: str = "",
    now: Optional[datetime] = None,
    random_token: Optional[str] = None,
    taken: Iterable[Path] = (),
) -> Path:
    """
    Computes where a job writes its output.

    Args:
        input_path: The source file.
        container: The output container (extension without the dot).
        output_dir: Directory for the output file.
        file_name_mode: "origin" or "custom".
        custom_name_rule: Template used in "custom" mode.
        now, random_token: Fixed values for {time} and {random}; used by tests.
        taken: Output paths already claimed by other tasks.

    Returns:
        The absolute output path.
    """
    extension = f".{container}"
    if file_name_mode == FILE_NAME_MODE_CUSTOM and custom_name_rule.strip():
        file_name = render_custom_name(custom_name_rule, input_path.stem, extension, now, random_token)
    else:
        file_name = input_path.stem + extension

    stem = Path(file_name).stem
    output_path = (output_dir / file_name).resolve()
    if output_path == input_path.resolve():
        stem = f"{stem}_converted"
        output_path = output_path.with_name(stem + extension)

    taken = {Path(path).resolve() for path in taken} | {input_path.resolve()}
    counter = 1
    while output_path in taken:
        output_path = output_path.with_name(f"{stem}_{counter}{extension}")
        counter += 1
    return output_path
