"""Batch upload orchestrator for jUnit XML reports.

Composes discovery, validation, tagging and the retry controller into a
complete upload engine that:

* Turns base paths into unique, validated payloads
* Limits in-flight uploads with ``asyncio.Semaphore`` (a freed slot is
  taken by the next waiting payload, whatever the previous outcome was)
* Stops starting new uploads as soon as one payload is batch-fatal, lets
  in-flight uploads finish, then raises the first fatal error
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from junit_uploader.discovery import resolve_candidate_paths
from junit_uploader.models import (
    BatchResult,
    FileOutcome,
    FileResult,
    InvalidFile,
    Payload,
    UploadConfig,
)
from junit_uploader.tags import resolve_span_tags
from junit_uploader.upload.client import UploadClient
from junit_uploader.upload.progress import ProgressSink
from junit_uploader.upload.retry import RetryController, UploadAborted
from junit_uploader.validator import validate_report_file

logger = logging.getLogger(__name__)


@dataclass
class _BatchRun:
    """Scheduling state owned by a single ``run()`` call."""

    semaphore: asyncio.Semaphore
    abort_event: asyncio.Event = field(default_factory=asyncio.Event)
    first_abort: UploadAborted | None = None


class BatchOrchestrator:
    """Main upload engine coordinating the report upload pipeline.

    Usage::

        orchestrator = BatchOrchestrator(config, client, sink)
        payloads = orchestrator.prepare(["reports/"])
        result = await orchestrator.run(payloads)

    Args:
        config: Upload pipeline configuration.
        client: Intake client; may be ``None`` in dry-run mode.
        sink: Receives one event per notable step.
        retry_controller: Optional pre-built controller (defaults to one
            built from *config*).
    """

    def __init__(
        self,
        config: UploadConfig,
        client: UploadClient | None,
        sink: ProgressSink,
        retry_controller: RetryController | None = None,
    ) -> None:
        if client is None and not config.dry_run:
            raise ValueError("An upload client is required unless dry_run is set")

        self._config = config
        self._sink = sink
        self._retry = retry_controller
        if self._retry is None and client is not None:
            self._retry = RetryController.from_config(client, sink, config)

        self.invalid_files: list[InvalidFile] = []

    # ------------------------------------------------------------------
    # Payload preparation
    # ------------------------------------------------------------------

    def prepare(
        self,
        base_paths: Iterable[str | Path],
        span_tags: dict[str, str] | None = None,
    ) -> list[Payload]:
        """Build the payloads for a batch.

        1. Resolve base paths to unique candidate files
        2. Validate each candidate, reporting and dropping invalid ones
        3. Attach the merged span tags

        Args:
            base_paths: Files and/or directories to upload.
            span_tags: Pre-merged span tags; resolved from git, CI and the
                config when omitted.

        Returns:
            One payload per unique valid report file.
        """
        candidates = resolve_candidate_paths(base_paths)
        if span_tags is None:
            span_tags = resolve_span_tags(self._config)

        self.invalid_files = []
        payloads: list[Payload] = []
        for path in candidates:
            message = validate_report_file(path)
            if message is not None:
                self.invalid_files.append(InvalidFile(path, message))
                self._sink.invalid_file(path, message)
                continue
            payloads.append(
                Payload(
                    service=self._config.service,
                    span_tags=dict(span_tags),
                    source_path=path,
                )
            )

        logger.info(
            "Prepared %d payloads from %d candidates (%d invalid)",
            len(payloads),
            len(candidates),
            len(self.invalid_files),
        )
        return payloads

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    async def upload(self, base_paths: Iterable[str | Path]) -> BatchResult:
        """Prepare payloads from *base_paths* and run the batch."""
        payloads = self.prepare(base_paths)
        return await self.run(payloads, invalid_files=list(self.invalid_files))

    async def run(
        self,
        payloads: Sequence[Payload],
        invalid_files: Sequence[InvalidFile] | None = None,
    ) -> BatchResult:
        """Upload *payloads* with at most ``max_concurrency`` in flight.

        Every call is an independent batch with its own concurrency cap and
        abort state.

        Args:
            payloads: Payloads to upload.
            invalid_files: Files rejected while preparing this batch
                (defaults to those of the last ``prepare`` call).

        Returns:
            The batch result; ``uploaded_count`` counts successes and
            dry-run uploads only.

        Raises:
            UploadAborted: The first batch-fatal failure observed, after
                in-flight uploads have finished. Its ``result`` holds the
                partial batch result.
        """
        batch = _BatchRun(asyncio.Semaphore(self._config.max_concurrency))

        logger.info(
            "Starting batch of %d payloads (concurrency %d, dry_run=%s)",
            len(payloads),
            self._config.max_concurrency,
            self._config.dry_run,
        )

        start = time.monotonic()
        results = await asyncio.gather(
            *(self._upload_single(p, batch) for p in payloads)
        )
        elapsed = time.monotonic() - start

        result = BatchResult(
            uploaded_count=sum(
                1
                for r in results
                if r.outcome in (FileOutcome.UPLOADED, FileOutcome.DRY_RUN)
            ),
            elapsed_seconds=elapsed,
            results=list(results),
            invalid_files=list(
                self.invalid_files if invalid_files is None else invalid_files
            ),
        )

        if batch.first_abort is not None:
            batch.first_abort.result = result
            logger.error(
                "Batch aborted after %d uploads: %s",
                result.uploaded_count,
                batch.first_abort,
            )
            raise batch.first_abort

        logger.info(
            "Batch complete: %d uploaded, %d skipped, %d invalid in %.2fs",
            result.uploaded_count,
            result.skipped_count,
            len(result.invalid_files),
            elapsed,
        )
        self._sink.batch_summary(result)
        return result

    # ------------------------------------------------------------------
    # Single payload
    # ------------------------------------------------------------------

    async def _upload_single(self, payload: Payload, batch: _BatchRun) -> FileResult:
        """Upload one payload inside a concurrency slot.

        Returns:
            The payload's FileResult. Never raises for per-file failures;
            a batch-fatal failure is recorded and signalled via the abort
            event instead.
        """
        async with batch.semaphore:
            if batch.abort_event.is_set():
                return FileResult(payload, FileOutcome.NOT_STARTED)

            if self._config.dry_run:
                self._sink.dry_run_upload(payload)
                return FileResult(payload, FileOutcome.DRY_RUN)

            assert self._retry is not None
            try:
                return await self._retry.upload(payload)
            except UploadAborted as exc:
                if batch.first_abort is None:
                    batch.first_abort = exc
                batch.abort_event.set()
                return FileResult(
                    payload, FileOutcome.ABORTED, error=exc.error, message=str(exc)
                )
            except Exception as exc:
                logger.error("Failed to upload %s: %s", payload.source_path, exc)
                self._sink.failed_upload(payload, str(exc))
                return FileResult(payload, FileOutcome.SKIPPED, message=str(exc))
