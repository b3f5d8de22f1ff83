"""Upload jUnit XML test reports to the CI test-report intake."""

__version__ = "0.1.0"

from junit_uploader.models import (
    BatchResult,
    BatchStatus,
    ClassifiedError,
    ErrorKind,
    FileOutcome,
    FileResult,
    InvalidFile,
    Payload,
    TransportFailure,
    UploadConfig,
)

__all__ = [
    "BatchResult",
    "BatchStatus",
    "ClassifiedError",
    "ErrorKind",
    "FileOutcome",
    "FileResult",
    "InvalidFile",
    "Payload",
    "TransportFailure",
    "UploadConfig",
    "__version__",
]
