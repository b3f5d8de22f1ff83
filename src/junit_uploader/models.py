"""Data models and enums for the jUnit report upload pipeline."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from junit_uploader.constants import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_SITE,
)


class ErrorKind(str, Enum):
    """Classification of a failed upload attempt."""

    RETRYABLE = "retryable"
    NON_RETRYABLE_SKIP = "non_retryable_skip"
    NON_RETRYABLE_ABORT = "non_retryable_abort"


class FileOutcome(str, Enum):
    """Terminal outcome of a single payload within a batch."""

    UPLOADED = "uploaded"
    DRY_RUN = "dry_run"
    SKIPPED = "skipped"
    ABORTED = "aborted"
    NOT_STARTED = "not_started"


class BatchStatus(str, Enum):
    """Overall status of a batch that ran to completion."""

    SUCCESS = "success"
    PARTIAL = "partial"


@dataclass(frozen=True, slots=True)
class Payload:
    """One report file's worth of upload work."""

    service: str
    span_tags: dict[str, str]
    source_path: str

    def __post_init__(self) -> None:
        if not self.service:
            raise ValueError("Payload service must be a non-empty string")


@dataclass(frozen=True, slots=True)
class TransportFailure:
    """Failure reported by the transport.

    ``status_code`` is ``None`` when the request never produced a response
    (connection refused, DNS failure, timeout).
    """

    status_code: int | None
    message: str


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    """A transport failure after classification."""

    kind: ErrorKind
    message: str
    attempt: int
    status_code: int | None = None


@dataclass(slots=True)
class FileResult:
    """Outcome recorded for one payload."""

    payload: Payload
    outcome: FileOutcome
    error: ClassifiedError | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class InvalidFile:
    """A candidate file rejected by the validator."""

    path: str
    message: str


@dataclass
class BatchResult:
    """Aggregate outcome of one orchestrator run."""

    uploaded_count: int
    elapsed_seconds: float
    results: list[FileResult] = field(default_factory=list)
    invalid_files: list[InvalidFile] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        """Payloads that reached a terminal failure without aborting the batch."""
        return sum(1 for r in self.results if r.outcome == FileOutcome.SKIPPED)

    @property
    def status(self) -> BatchStatus:
        if self.skipped_count or self.invalid_files:
            return BatchStatus.PARTIAL
        return BatchStatus.SUCCESS


@dataclass
class UploadConfig:
    """Configuration for the report upload pipeline.

    Controls the service identity, tagging, dry-run mode, concurrency cap
    and retry schedule. The API key is never stored here; it is obtained
    from ``api_key_provider`` only when a real upload is about to start.
    """

    service: str
    env: str | None = None
    dry_run: bool = False
    tags: list[str] = field(default_factory=list)
    env_var_tags: list[str] = field(default_factory=list)
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    api_key_provider: Callable[[], str] | None = None
    site: str = DEFAULT_SITE
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_jitter: float = 1.0

    def __post_init__(self) -> None:
        if not self.service or not self.service.strip():
            raise ValueError("Missing service")
        if self.max_concurrency < 1:
            raise ValueError(
                f"max_concurrency must be a positive integer, got {self.max_concurrency!r}"
            )
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries!r}")
