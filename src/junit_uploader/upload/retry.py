"""Failure classification and per-payload retry control.

Every failed attempt is classified once, at this boundary, from its
:class:`~junit_uploader.models.TransportFailure`:

* no status code (connection-level failure) -- retryable
* 400 / 403 -- never retried, stops the whole batch
* 413 -- never retried, skips this file only
* any other status -- retryable

:func:`decide` turns a classified error into an explicit
:class:`RetryDecision`; :class:`RetryController` runs the attempts with
tenacity and acts on that decision.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    stop_after_attempt,
    wait_exponential_jitter,
)

from junit_uploader.constants import (
    DEFAULT_MAX_RETRIES,
    ERROR_CODES_NO_RETRY,
    ERROR_CODES_STOP_UPLOAD,
)
from junit_uploader.models import (
    ClassifiedError,
    ErrorKind,
    FileOutcome,
    FileResult,
    Payload,
    TransportFailure,
    UploadConfig,
)
from junit_uploader.upload.client import TransportError, UploadClient
from junit_uploader.upload.fsm import PayloadLifecycleSM

if TYPE_CHECKING:
    from junit_uploader.models import BatchResult
    from junit_uploader.upload.progress import ProgressSink

logger = logging.getLogger(__name__)


class RetryDecision(str, Enum):
    """What to do after a failed attempt."""

    RETRY = "retry"
    SKIP = "skip"
    ABORT = "abort"


class UploadAborted(Exception):
    """Raised when a payload fails with a batch-fatal status.

    Attributes:
        payload: The payload whose upload was fatal.
        error: The classified error that triggered the abort.
        result: Partial batch result, attached by the orchestrator once
            in-flight uploads have drained.
    """

    def __init__(self, payload: Payload, error: ClassifiedError) -> None:
        super().__init__(
            f"Upload of {payload.source_path} stopped the batch: {error.message}"
        )
        self.payload = payload
        self.error = error
        self.result: BatchResult | None = None


def classify(failure: TransportFailure, attempt: int) -> ClassifiedError:
    """Classify a transport failure produced by attempt number *attempt*."""
    status = failure.status_code
    if status is None:
        kind = ErrorKind.RETRYABLE
    elif status in ERROR_CODES_STOP_UPLOAD:
        kind = ErrorKind.NON_RETRYABLE_ABORT
    elif status in ERROR_CODES_NO_RETRY:
        kind = ErrorKind.NON_RETRYABLE_SKIP
    else:
        kind = ErrorKind.RETRYABLE
    return ClassifiedError(
        kind=kind, message=failure.message, attempt=attempt, status_code=status
    )


def decide(error: ClassifiedError, attempts_remaining: int) -> RetryDecision:
    """Map a classified error to retry, skip or abort.

    A retryable error whose budget is exhausted is a skip, including
    connection-level failures that never produced a status code.
    """
    if error.kind == ErrorKind.NON_RETRYABLE_ABORT:
        return RetryDecision.ABORT
    if error.kind == ErrorKind.RETRYABLE and attempts_remaining > 0:
        return RetryDecision.RETRY
    return RetryDecision.SKIP


class RetryController:
    """Runs one payload's upload attempts with bounded exponential backoff.

    Usage::

        controller = RetryController.from_config(client, sink, config)
        result = await controller.upload(payload)  # may raise UploadAborted

    Args:
        client: Transport used for each attempt.
        sink: Receives uploading / retry / failure / success events.
        max_retries: Retries after the initial attempt.
        initial_delay: First backoff delay in seconds.
        max_delay: Backoff cap in seconds.
        jitter: Maximum random seconds added to each delay.
        sleep: Awaitable sleep used between attempts.
    """

    def __init__(
        self,
        client: UploadClient,
        sink: ProgressSink,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._sink = sink
        self._max_retries = max_retries
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._jitter = jitter
        self._sleep = sleep

    @classmethod
    def from_config(
        cls, client: UploadClient, sink: ProgressSink, config: UploadConfig
    ) -> RetryController:
        return cls(
            client,
            sink,
            max_retries=config.max_retries,
            initial_delay=config.retry_initial_delay,
            max_delay=config.retry_max_delay,
            jitter=config.retry_jitter,
        )

    @property
    def max_attempts(self) -> int:
        return self._max_retries + 1

    async def upload(self, payload: Payload) -> FileResult:
        """Upload *payload*, retrying transient failures.

        Returns:
            A FileResult with outcome ``UPLOADED`` or ``SKIPPED``.

        Raises:
            UploadAborted: If the terminal failure is batch-fatal.
            Exception: Anything the client raises other than
                TransportError, after a single attempt.
        """
        lifecycle = PayloadLifecycleSM()
        self._sink.uploading(payload)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                multiplier=self._initial_delay,
                max=self._max_delay,
                jitter=self._jitter,
            ),
            retry=self._should_retry,
            before_sleep=partial(self._notify_retry, payload),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    lifecycle.begin_attempt()
                    await self._client.upload(payload)
        except TransportError as exc:
            error = classify(exc.failure, lifecycle.attempt)
            self._sink.failed_upload(payload, error.message)

            if decide(error, 0) == RetryDecision.ABORT:
                lifecycle.abort()
                logger.error(
                    "Upload of %s failed with status %s, stopping batch",
                    payload.source_path,
                    error.status_code,
                )
                raise UploadAborted(payload, error) from exc

            lifecycle.skip()
            logger.warning(
                "Skipping %s after %d attempt(s): %s",
                payload.source_path,
                error.attempt,
                error.message,
            )
            return FileResult(
                payload, FileOutcome.SKIPPED, error=error, message=error.message
            )
        except Exception:
            # Not a transport failure: never retried, the caller records it
            if lifecycle.current_state.value == "attempting":
                lifecycle.skip()
            raise

        lifecycle.succeed()
        self._sink.file_uploaded(payload)
        return FileResult(payload, FileOutcome.UPLOADED)

    # ------------------------------------------------------------------
    # tenacity hooks
    # ------------------------------------------------------------------

    def _should_retry(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        exc = outcome.exception()
        if not isinstance(exc, TransportError):
            return False
        error = classify(exc.failure, retry_state.attempt_number)
        remaining = self.max_attempts - retry_state.attempt_number
        return decide(error, remaining) == RetryDecision.RETRY

    def _notify_retry(self, payload: Payload, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        message = str(exc) if exc is not None else "unknown error"
        logger.warning(
            "Attempt %d for %s failed: %s",
            retry_state.attempt_number,
            payload.source_path,
            message,
        )
        self._sink.retried_upload(payload, message, retry_state.attempt_number)
