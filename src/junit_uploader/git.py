"""Git metadata of the working directory, as span tags."""

from __future__ import annotations

import logging
import subprocess
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

# One line per field, in this order.
_LOG_FORMAT = "%H%n%an%n%ae%n%aI%n%cn%n%ce%n%cI%n%s"
_LOG_FIELDS = (
    "git.commit.sha",
    "git.commit.author.name",
    "git.commit.author.email",
    "git.commit.author.date",
    "git.commit.committer.name",
    "git.commit.committer.email",
    "git.commit.committer.date",
    "git.commit.message",
)


def _git(args: list[str], cwd: str | None) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
        timeout=10,
    )
    return completed.stdout.strip()


def filter_sensitive_info(repository_url: str) -> str:
    """Strip user credentials from an http(s) repository URL."""
    parts = urlsplit(repository_url)
    if parts.scheme not in ("http", "https") or "@" not in parts.netloc:
        return repository_url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def get_git_metadata(cwd: str | None = None) -> dict[str, str]:
    """Read commit, branch and remote information with the ``git`` binary.

    Args:
        cwd: Repository directory (defaults to the process cwd).

    Returns:
        ``git.*`` span tags; ``{}`` when git is missing or *cwd* is not a
        repository.
    """
    try:
        log_lines = _git(["log", "-1", f"--format={_LOG_FORMAT}"], cwd).splitlines()
        branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd)
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Git metadata unavailable: %s", exc)
        return {}

    tags = {
        key: value for key, value in zip(_LOG_FIELDS, log_lines) if value
    }
    if branch and branch != "HEAD":
        tags["git.branch"] = branch

    try:
        remote = _git(["ls-remote", "--get-url"], cwd)
    except (OSError, subprocess.SubprocessError):
        logger.debug("No git remote configured")
        remote = ""
    if remote:
        tags["git.repository_url"] = filter_sensitive_info(remote)

    return tags
