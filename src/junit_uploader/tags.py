"""Span tag parsing and merging.

Every payload carries one flat ``dict[str, str]`` of span tags assembled
from several sources. Later sources overwrite earlier ones:

1. git metadata of the working directory
2. CI provider environment
3. ``--tags`` values from the command line
4. ``DD_TAGS`` from the environment
5. the explicit ``env`` setting
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping

from junit_uploader.ci import get_ci_span_tags
from junit_uploader.git import get_git_metadata
from junit_uploader.models import UploadConfig

logger = logging.getLogger(__name__)


def parse_tags(tags: Iterable[str]) -> dict[str, str]:
    """Parse ``key:value`` strings into a mapping.

    Splits on the first ``:`` so values may themselves contain colons
    (URLs, timestamps). Entries without a ``:`` are ignored.
    """
    result: dict[str, str] = {}
    for raw in tags:
        key, sep, value = raw.partition(":")
        key = key.strip()
        if not sep or not key:
            logger.debug("Ignoring malformed tag %r", raw)
            continue
        result[key] = value.strip()
    return result


def merge_span_tags(
    *,
    git_tags: Mapping[str, str] | None = None,
    ci_tags: Mapping[str, str] | None = None,
    cli_tags: Mapping[str, str] | None = None,
    env_var_tags: Mapping[str, str] | None = None,
    env: str | None = None,
) -> dict[str, str]:
    """Merge tag sources, lowest precedence first."""
    merged: dict[str, str] = {}
    for source in (git_tags, ci_tags, cli_tags, env_var_tags):
        if source:
            merged.update(source)
    if env:
        merged["env"] = env
    return merged


def resolve_span_tags(
    config: UploadConfig,
    environ: Mapping[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, str]:
    """Collect every tag source for *config* and merge them.

    Args:
        config: Upload configuration (CLI tags, ``DD_TAGS`` items, env).
        environ: Environment used for CI detection (defaults to ``os.environ``).
        cwd: Directory to read git metadata from (defaults to the process cwd).

    Returns:
        The merged span tags shared by every payload of the batch.
    """
    environ = os.environ if environ is None else environ
    git_tags = get_git_metadata(cwd)
    ci_tags = get_ci_span_tags(environ)
    logger.debug("Tag sources: %d git, %d ci", len(git_tags), len(ci_tags))

    return merge_span_tags(
        git_tags=git_tags,
        ci_tags=ci_tags,
        cli_tags=parse_tags(config.tags),
        env_var_tags=parse_tags(config.env_var_tags),
        env=config.env,
    )
