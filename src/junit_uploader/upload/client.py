"""HTTP client for the CI test-report intake.

One ``POST api/v2/cireport`` per report, as a multipart body:

* ``event`` -- JSON with the service, span tags and report format version
* ``junit_xml_report_file`` -- the report, gzip-compressed

Every failure is raised as :class:`TransportError` carrying a
:class:`~junit_uploader.models.TransportFailure`, so callers never touch
httpx exception types.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import logging
from pathlib import Path
from typing import Protocol

import httpx

from junit_uploader.constants import CIREPORT_VERSION, DEFAULT_SITE, INTAKE_PATH
from junit_uploader.models import Payload, TransportFailure

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when an upload attempt fails at the transport level."""

    def __init__(self, failure: TransportFailure) -> None:
        super().__init__(failure.message)
        self.failure = failure


class UploadClient(Protocol):
    """Anything that can send one payload to the intake."""

    async def upload(self, payload: Payload) -> None:
        """Send *payload*; raise :class:`TransportError` on failure."""
        ...


def get_intake_url(site: str = DEFAULT_SITE) -> str:
    return f"https://cireport-intake.{site}"


def build_event(payload: Payload) -> dict[str, str]:
    """Build the ``event`` part of the multipart body."""
    return {
        "service": payload.service,
        **payload.span_tags,
        "_dd.cireport_version": CIREPORT_VERSION,
    }


class IntakeClient:
    """Async httpx wrapper around the report intake endpoint.

    Usage::

        async with IntakeClient(api_key="...") as client:
            await client.upload(payload)

    Args:
        api_key: Intake API key, sent as the ``DD-API-KEY`` header.
        site: Intake site, e.g. ``datadoghq.com`` or ``datadoghq.eu``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: str,
        site: str = DEFAULT_SITE,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=get_intake_url(site),
            headers={"DD-API-KEY": api_key},
            timeout=timeout,
            transport=transport,
        )

    async def upload(self, payload: Payload) -> None:
        """Upload one report.

        Raises:
            TransportError: On a non-2xx response (with its status code) or
                on a request-level failure (status code ``None``).
            OSError: If the report can no longer be read from disk.
        """
        content = await asyncio.to_thread(Path(payload.source_path).read_bytes)
        stem = Path(payload.source_path).stem
        files = {
            "event": (
                "event.json",
                json.dumps(build_event(payload)).encode(),
                "application/json",
            ),
            "junit_xml_report_file": (
                f"{stem}.xml.gz",
                await asyncio.to_thread(gzip.compress, content),
                "application/octet-stream",
            ),
        }

        try:
            response = await self._client.post(INTAKE_PATH, files=files)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise TransportError(
                TransportFailure(status, f"Request failed with status code {status}")
            ) from exc
        except httpx.RequestError as exc:
            raise TransportError(
                TransportFailure(None, str(exc) or type(exc).__name__)
            ) from exc

        logger.debug("Uploaded %s (%d bytes)", payload.source_path, len(content))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> IntakeClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
