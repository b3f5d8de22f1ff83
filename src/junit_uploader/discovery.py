"""Candidate report discovery.

Turns the base paths given on the command line into a de-duplicated list
of concrete report file paths. Directories are expanded one level deep to
their ``*.xml`` files; explicit files are kept only if they exist.
"""

from __future__ import annotations

import logging
import os
import posixpath
from collections.abc import Iterable
from pathlib import Path

from junit_uploader.constants import REPORT_FILE_PATTERN

logger = logging.getLogger(__name__)


def normalize_path(base_path: str | Path) -> str:
    """Resolve ``.`` and ``..`` segments and use ``/`` as the separator.

    Backslashes are separators only on Windows; elsewhere they are legal
    file name characters and are kept.
    """
    path = str(base_path)
    if os.sep == "\\":
        path = path.replace("\\", "/")
    return posixpath.normpath(path)


def expand_base_path(base_path: str) -> list[str]:
    """Expand one normalized base path into candidate file paths.

    Args:
        base_path: A file or directory path.

    Returns:
        The directory's direct ``*.xml`` children (sorted), ``[base_path]``
        for an existing file, or ``[]`` for anything else.
    """
    path = Path(base_path)
    if path.is_dir():
        return sorted(
            posixpath.join(base_path, child.name)
            for child in path.glob(REPORT_FILE_PATTERN)
            if child.is_file()
        )
    if path.is_file():
        return [base_path]
    logger.debug("Dropping missing base path %s", base_path)
    return []


def resolve_candidate_paths(base_paths: Iterable[str | Path]) -> list[str]:
    """Resolve base paths to unique candidate report files.

    Args:
        base_paths: Files and/or directories, in command-line order.

    Returns:
        Unique normalized file paths, first occurrence wins.
    """
    candidates: list[str] = []
    for base_path in base_paths:
        candidates.extend(expand_base_path(normalize_path(base_path)))

    unique = list(dict.fromkeys(normalize_path(c) for c in candidates))
    if len(unique) != len(candidates):
        logger.debug(
            "Collapsed %d candidate paths to %d unique files",
            len(candidates),
            len(unique),
        )
    return unique
