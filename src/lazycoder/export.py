"""Writing generated files to disk or a zip archive."""

from __future__ import annotations

import zipfile
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

import structlog

from lazycoder.models import TerraformFile

logger = structlog.get_logger(__name__)


def _safe_relative(filename: str) -> PurePosixPath:
    path = PurePosixPath(filename)
    if path.is_absolute() or ".." in path.parts:
        raise ValueError(f"Refusing to write outside the output directory: {filename}")
    return path


def write_files(files: Iterable[TerraformFile], out_dir: Path) -> list[Path]:
    """Write each file under ``out_dir``, creating nested directories.

    Args:
        files: Files to write
        out_dir: Target directory (created if missing)

    Returns:
        Paths written, in input order

    Raises:
        ValueError: If a filename is absolute or escapes ``out_dir``
    """
    written: list[Path] = []
    for f in files:
        target = out_dir.joinpath(*_safe_relative(f.filename).parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f.content, encoding="utf-8")
        written.append(target)
    logger.info("files_written", out_dir=str(out_dir), count=len(written))
    return written


def write_zip(files: Iterable[TerraformFile], archive_path: Path) -> Path:
    """Write files into a zip archive; ``.zip`` is appended when missing.

    Args:
        files: Files to archive
        archive_path: Target archive path

    Returns:
        The archive path actually written
    """
    if archive_path.suffix.lower() != ".zip":
        archive_path = archive_path.with_name(archive_path.name + ".zip")
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for f in files:
            archive.writestr(str(_safe_relative(f.filename)), f.content)
            count += 1
    logger.info("archive_written", path=str(archive_path), count=count)
    return archive_path
