"""Tests for failure classification, retry decisions and the retry controller.

Groups:
  - Classification (status code -> ErrorKind)
  - Decision (ClassifiedError + remaining budget -> RetryDecision)
  - RetryController (attempt counts, sink events, abort/skip)
  - Lifecycle FSM
"""

from __future__ import annotations

import warnings
from unittest.mock import call, patch

import pytest

from junit_uploader.constants import ERROR_CODES_NO_RETRY, ERROR_CODES_STOP_UPLOAD
from junit_uploader.models import (
    ClassifiedError,
    ErrorKind,
    FileOutcome,
    Payload,
    TransportFailure,
)
from junit_uploader.upload.fsm import PayloadLifecycleSM
from junit_uploader.upload.retry import (
    RetryController,
    RetryDecision,
    UploadAborted,
    classify,
    decide,
)

PAYLOAD = Payload(service="svc", span_tags={}, source_path="reports/unit.xml")


def _controller(client, sink, **kwargs) -> RetryController:
    kwargs.setdefault("initial_delay", 0)
    kwargs.setdefault("max_delay", 0)
    kwargs.setdefault("jitter", 0)
    return RetryController(client, sink, **kwargs)


# ======================================================================
# Classification
# ======================================================================


class TestClassify:
    """Mapping from TransportFailure to ErrorKind."""

    def test_no_status_is_retryable(self):
        error = classify(TransportFailure(None, "timeout"), attempt=1)
        assert error.kind == ErrorKind.RETRYABLE
        assert error.status_code is None

    @pytest.mark.parametrize("status", [400, 403])
    def test_stop_statuses_abort(self, status):
        assert classify(TransportFailure(status, "x"), 1).kind == ErrorKind.NON_RETRYABLE_ABORT

    def test_413_skips(self):
        assert classify(TransportFailure(413, "too large"), 1).kind == ErrorKind.NON_RETRYABLE_SKIP

    @pytest.mark.parametrize("status", [401, 404, 408, 429, 500, 502, 503])
    def test_other_statuses_are_retryable(self, status):
        assert classify(TransportFailure(status, "x"), 1).kind == ErrorKind.RETRYABLE

    def test_classification_keeps_message_and_attempt(self):
        error = classify(TransportFailure(500, "boom"), attempt=4)
        assert error.message == "boom"
        assert error.attempt == 4

    def test_stop_set_is_strict_subset_of_no_retry_set(self):
        assert ERROR_CODES_STOP_UPLOAD < ERROR_CODES_NO_RETRY
        assert ERROR_CODES_NO_RETRY - ERROR_CODES_STOP_UPLOAD == {413}


# ======================================================================
# Decision
# ======================================================================


class TestDecide:
    """Three-way retry decision."""

    def test_retryable_with_budget_retries(self):
        error = ClassifiedError(ErrorKind.RETRYABLE, "x", 1, 500)
        assert decide(error, attempts_remaining=3) == RetryDecision.RETRY

    def test_retryable_without_budget_skips(self):
        error = ClassifiedError(ErrorKind.RETRYABLE, "x", 6, 500)
        assert decide(error, attempts_remaining=0) == RetryDecision.SKIP

    def test_exhausted_connection_failure_skips(self):
        """No status was ever observed, so exhaustion is never fatal."""
        error = ClassifiedError(ErrorKind.RETRYABLE, "x", 6, None)
        assert decide(error, attempts_remaining=0) == RetryDecision.SKIP

    def test_skip_kind_skips_even_with_budget(self):
        error = ClassifiedError(ErrorKind.NON_RETRYABLE_SKIP, "x", 1, 413)
        assert decide(error, attempts_remaining=5) == RetryDecision.SKIP

    def test_abort_kind_aborts_even_with_budget(self):
        error = ClassifiedError(ErrorKind.NON_RETRYABLE_ABORT, "x", 1, 403)
        assert decide(error, attempts_remaining=5) == RetryDecision.ABORT


# ======================================================================
# RetryController
# ======================================================================


class TestRetryController:
    """Attempt counting and sink events for a single payload."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, make_client, sink):
        client = make_client()
        result = await _controller(client, sink).upload(PAYLOAD)

        assert result.outcome == FileOutcome.UPLOADED
        assert client.attempts[PAYLOAD.source_path] == 1
        sink.uploading.assert_called_once_with(PAYLOAD)
        sink.file_uploaded.assert_called_once_with(PAYLOAD)
        sink.retried_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_500_retried_six_attempts_then_skipped(self, make_client, sink):
        client = make_client({PAYLOAD.source_path: [500]})
        result = await _controller(client, sink).upload(PAYLOAD)

        assert client.attempts[PAYLOAD.source_path] == 6
        assert result.outcome == FileOutcome.SKIPPED
        assert result.error is not None
        assert result.error.attempt == 6
        assert result.error.kind == ErrorKind.RETRYABLE
        sink.failed_upload.assert_called_once()
        sink.file_uploaded.assert_not_called()

    @pytest.mark.asyncio
    async def test_retry_notices_in_attempt_order(self, make_client, sink):
        client = make_client({PAYLOAD.source_path: [500]})
        await _controller(client, sink).upload(PAYLOAD)

        message = "Request failed with status code 500"
        assert sink.retried_upload.call_args_list == [
            call(PAYLOAD, message, attempt) for attempt in range(1, 6)
        ]

    @pytest.mark.asyncio
    async def test_413_not_retried_and_skipped(self, make_client, sink):
        client = make_client({PAYLOAD.source_path: [413]})
        result = await _controller(client, sink).upload(PAYLOAD)

        assert client.attempts[PAYLOAD.source_path] == 1
        assert result.outcome == FileOutcome.SKIPPED
        assert result.error.kind == ErrorKind.NON_RETRYABLE_SKIP
        sink.retried_upload.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 403])
    async def test_fatal_status_not_retried_and_aborts(self, make_client, sink, status):
        client = make_client({PAYLOAD.source_path: [status]})

        with pytest.raises(UploadAborted) as excinfo:
            await _controller(client, sink).upload(PAYLOAD)

        assert client.attempts[PAYLOAD.source_path] == 1
        assert excinfo.value.payload is PAYLOAD
        assert excinfo.value.error.kind == ErrorKind.NON_RETRYABLE_ABORT
        assert excinfo.value.error.status_code == status
        sink.retried_upload.assert_not_called()
        sink.failed_upload.assert_called_once()

    @pytest.mark.asyncio
    async def test_fatal_status_after_transient_failure(self, make_client, sink):
        client = make_client({PAYLOAD.source_path: [502, 403]})

        with pytest.raises(UploadAborted) as excinfo:
            await _controller(client, sink).upload(PAYLOAD)

        assert client.attempts[PAYLOAD.source_path] == 2
        assert excinfo.value.error.attempt == 2

    @pytest.mark.asyncio
    async def test_connection_failures_exhaust_to_skip(self, make_client, sink):
        client = make_client({PAYLOAD.source_path: ["conn"]})
        result = await _controller(client, sink).upload(PAYLOAD)

        assert client.attempts[PAYLOAD.source_path] == 6
        assert result.outcome == FileOutcome.SKIPPED
        assert result.error.status_code is None

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, make_client, sink):
        client = make_client({PAYLOAD.source_path: [503, "conn", None]})
        result = await _controller(client, sink).upload(PAYLOAD)

        assert result.outcome == FileOutcome.UPLOADED
        assert client.attempts[PAYLOAD.source_path] == 3
        assert sink.retried_upload.call_count == 2
        sink.failed_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(self, make_client, sink):
        client = make_client({PAYLOAD.source_path: [500]})
        result = await _controller(client, sink, max_retries=0).upload(PAYLOAD)

        assert client.attempts[PAYLOAD.source_path] == 1
        assert result.outcome == FileOutcome.SKIPPED

    @pytest.mark.asyncio
    async def test_backoff_grows_exponentially(self, make_client, sink):
        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        client = make_client({PAYLOAD.source_path: [500]})
        controller = RetryController(
            client, sink, initial_delay=1, max_delay=30, jitter=0, sleep=fake_sleep
        )
        await controller.upload(PAYLOAD)

        assert delays == [1, 2, 4, 8, 16]

    @pytest.mark.asyncio
    async def test_non_transport_errors_propagate_without_retry(self, sink):
        class BrokenClient:
            attempts = 0

            async def upload(self, payload):
                BrokenClient.attempts += 1
                raise FileNotFoundError("gone")

        with pytest.raises(FileNotFoundError):
            await _controller(BrokenClient(), sink).upload(PAYLOAD)
        assert BrokenClient.attempts == 1

    @pytest.mark.asyncio
    async def test_non_transport_error_leaves_lifecycle_skipped(self, sink):
        lifecycles: list[PayloadLifecycleSM] = []

        def recording_lifecycle() -> PayloadLifecycleSM:
            fsm = PayloadLifecycleSM()
            lifecycles.append(fsm)
            return fsm

        class VanishingClient:
            async def upload(self, payload):
                raise FileNotFoundError(payload.source_path)

        with patch("junit_uploader.upload.retry.PayloadLifecycleSM", recording_lifecycle):
            with pytest.raises(FileNotFoundError):
                await _controller(VanishingClient(), sink).upload(PAYLOAD)

        assert [fsm.current_state.value for fsm in lifecycles] == ["skipped"]

    @pytest.mark.asyncio
    async def test_backoff_schedule_emits_no_deprecation_warning(self, make_client, sink):
        client = make_client({PAYLOAD.source_path: [503, None]})

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            result = await _controller(client, sink).upload(PAYLOAD)

        assert result.outcome == FileOutcome.UPLOADED
        assert not [
            w
            for w in caught
            if issubclass(w.category, DeprecationWarning) and "initial" in str(w.message)
        ]


# ======================================================================
# Lifecycle FSM
# ======================================================================


class TestPayloadLifecycle:
    """Legal and illegal lifecycle transitions."""

    def test_starts_pending(self):
        fsm = PayloadLifecycleSM()
        assert fsm.current_state.value == "pending"
        assert fsm.attempt == 0

    def test_attempts_are_counted(self):
        fsm = PayloadLifecycleSM()
        assert fsm.begin_attempt() == 1
        assert fsm.begin_attempt() == 2
        assert fsm.begin_attempt() == 3
        assert fsm.current_state.value == "attempting"

    @pytest.mark.parametrize(
        "event, state",
        [("succeed", "succeeded"), ("skip", "skipped"), ("abort", "aborted")],
    )
    def test_terminal_transitions(self, event, state):
        fsm = PayloadLifecycleSM()
        fsm.begin_attempt()
        getattr(fsm, event)()
        assert fsm.current_state.value == state

    def test_illegal_success_before_attempt(self):
        fsm = PayloadLifecycleSM()
        with pytest.raises(Exception):
            fsm.succeed()

    def test_illegal_retry_after_success(self):
        fsm = PayloadLifecycleSM()
        fsm.begin_attempt()
        fsm.succeed()
        with pytest.raises(Exception):
            fsm.retry()
