"""Configuration loading for the upload pipeline.

Builds an explicit :class:`~junit_uploader.models.UploadConfig` from CLI
values and the process environment, and resolves the intake API key.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

import keyring
from keyring.errors import KeyringError

from junit_uploader.constants import DEFAULT_MAX_CONCURRENCY, DEFAULT_SITE
from junit_uploader.models import UploadConfig

logger = logging.getLogger(__name__)

SERVICE_NAME = "junit-uploader"
KEY_NAME = "api_key"

API_KEY_ENV_VARS = ("DATADOG_API_KEY", "DD_API_KEY")


def get_api_key(environ: Mapping[str, str] | None = None) -> str:
    """Get the intake API key: environment first, then the system keyring.

    Args:
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        API key string.

    Raises:
        RuntimeError: If no key found anywhere, with actionable instructions.
    """
    environ = os.environ if environ is None else environ

    for var in API_KEY_ENV_VARS:
        api_key = environ.get(var)
        if api_key:
            return api_key

    try:
        api_key = keyring.get_password(SERVICE_NAME, KEY_NAME)
    except KeyringError:
        logger.debug("No usable keyring backend", exc_info=True)
        api_key = None
    if api_key:
        return api_key

    raise RuntimeError(
        "Neither DATADOG_API_KEY nor DD_API_KEY is in your environment.\n"
        "Export one of them, or store the key with: "
        "junit-upload config set-api-key YOUR_KEY"
    )


def _split_env_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_upload_config(
    service: str | None = None,
    env: str | None = None,
    dry_run: bool = False,
    tags: list[str] | None = None,
    max_concurrency: int | None = None,
    environ: Mapping[str, str] | None = None,
) -> UploadConfig:
    """Resolve the upload configuration from CLI values and the environment.

    Resolution order:

    * ``service``: the explicit value, then ``DD_SERVICE``
    * ``env``: ``DD_ENV``, then the explicit value
    * env-var tags: ``DD_TAGS`` (comma separated ``key:value`` items)
    * site: ``DATADOG_SITE``, then ``datadoghq.com``

    Args:
        service: Service name from the command line.
        env: Environment name from the command line.
        dry_run: Simulate uploads without network I/O.
        tags: ``key:value`` strings from the command line.
        max_concurrency: Maximum simultaneous uploads.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        A validated UploadConfig.

    Raises:
        ValueError: If the service is missing or a value is out of range.
    """
    environ = os.environ if environ is None else environ

    resolved_service = service or environ.get("DD_SERVICE")
    if not resolved_service:
        raise ValueError("Missing service")

    return UploadConfig(
        service=resolved_service,
        env=environ.get("DD_ENV") or env,
        dry_run=dry_run,
        tags=list(tags or []),
        env_var_tags=_split_env_tags(environ.get("DD_TAGS")),
        max_concurrency=(
            DEFAULT_MAX_CONCURRENCY if max_concurrency is None else max_concurrency
        ),
        api_key_provider=lambda: get_api_key(environ),
        site=environ.get("DATADOG_SITE") or DEFAULT_SITE,
    )
