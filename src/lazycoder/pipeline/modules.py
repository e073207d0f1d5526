"""Custom module context loading from an uploaded archive.

The archive reader yields ``{path: bytes | None}`` where None marks a
directory entry. The loader keeps a bounded set of text files whose
extension is allow-listed, skipping hidden files and OS metadata folders.
Callers treat :class:`ModuleExtractionError` as non-fatal.
"""

from __future__ import annotations

import io
import zipfile
from collections.abc import Mapping
from pathlib import PurePosixPath

import structlog

from lazycoder.config import ModulesConfig
from lazycoder.models import TerraformFile

logger = structlog.get_logger(__name__)

ArchiveEntries = Mapping[str, bytes | None]


class ModuleExtractionError(Exception):
    """Raised when the module archive cannot be read."""

    pass


def read_archive(data: bytes) -> dict[str, bytes | None]:
    """Read a zip archive into a path-to-content mapping.

    Args:
        data: Raw archive bytes

    Returns:
        Mapping of entry path to file bytes, or None for directories

    Raises:
        zipfile.BadZipFile: If ``data`` is not a zip archive
    """
    entries: dict[str, bytes | None] = {}
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for info in archive.infolist():
            entries[info.filename] = None if info.is_dir() else archive.read(info)
    return entries


def is_ignored_path(path: str, ignored_prefixes: list[str]) -> bool:
    """Whether any component of ``path`` starts with an ignored prefix."""
    return any(
        part.startswith(prefix)
        for part in PurePosixPath(path).parts
        for prefix in ignored_prefixes
    )


def select_context_files(entries: ArchiveEntries, config: ModulesConfig) -> list[TerraformFile]:
    """Filter archive entries down to allow-listed text files.

    Args:
        entries: Archive entries as produced by :func:`read_archive`
        config: Extension allow-list, ignored prefixes and file limit

    Returns:
        Decoded files in archive order, at most ``config.max_files``
    """
    files: list[TerraformFile] = []
    for path, content in entries.items():
        if content is None or path.endswith("/"):
            continue
        if is_ignored_path(path, config.ignored_prefixes):
            continue
        if PurePosixPath(path).suffix.lower() not in config.allowed_extensions:
            continue
        if len(files) >= config.max_files:
            logger.warning("module_file_limit_reached", max_files=config.max_files)
            break
        files.append(TerraformFile(filename=path, content=content.decode("utf-8", errors="replace")))
    return files


def load_module_context(data: bytes, config: ModulesConfig | None = None) -> list[TerraformFile]:
    """Extract module context files from a zip archive.

    Args:
        data: Raw archive bytes
        config: Filtering configuration (defaults apply when omitted)

    Returns:
        Text files to inject into the code generation stage

    Raises:
        ModuleExtractionError: If anything goes wrong while reading the archive
    """
    config = config or ModulesConfig()
    try:
        entries = read_archive(data)
        files = select_context_files(entries, config)
    except Exception as e:
        logger.error("module_extraction_failed", error=str(e))
        raise ModuleExtractionError(
            "Failed to extract custom modules. Please ensure it is a valid ZIP file."
        ) from e

    logger.info("module_context_loaded", entries=len(entries), files=len(files))
    return files
