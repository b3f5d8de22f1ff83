"""Shallow structural validation of jUnit XML reports.

A report is accepted when it is well-formed XML and its root element is
``<testsuite>`` or ``<testsuites>``. Nothing below the root is inspected.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

from junit_uploader.constants import ACCEPTED_ROOT_TAGS

WRONG_ROOT_MESSAGE = "Neither <testsuites> nor <testsuite> are the root tag."


def _local_name(tag: str) -> str:
    # ElementTree renders namespaced tags as "{uri}name"
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[-1]
    return tag


def validate_report(content: bytes | str) -> str | None:
    """Validate report content.

    Args:
        content: Raw file content.

    Returns:
        ``None`` if the report is valid, otherwise a human-readable reason.
        Parse failures surface the parser's own message.
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        return str(exc)

    if _local_name(root.tag) not in ACCEPTED_ROOT_TAGS:
        return WRONG_ROOT_MESSAGE
    return None


def validate_report_file(path: str | Path) -> str | None:
    """Read *path* and validate its content; unreadable files are invalid."""
    try:
        content = Path(path).read_bytes()
    except OSError as exc:
        return exc.strerror or str(exc)
    return validate_report(content)
