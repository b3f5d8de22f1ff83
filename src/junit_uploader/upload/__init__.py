"""Upload pipeline for the CI test-report intake.

Public API
----------
.. autoclass:: IntakeClient
.. autoclass:: TransportError
.. autoclass:: RetryController
.. autoclass:: RetryDecision
.. autoclass:: UploadAborted
.. autoclass:: BatchOrchestrator
.. autoclass:: ConsoleReporter
.. autoclass:: PayloadLifecycleSM
"""

from junit_uploader.upload.client import IntakeClient, TransportError, UploadClient
from junit_uploader.upload.fsm import PayloadLifecycleSM
from junit_uploader.upload.orchestrator import BatchOrchestrator
from junit_uploader.upload.progress import ConsoleReporter, ProgressSink
from junit_uploader.upload.retry import (
    RetryController,
    RetryDecision,
    UploadAborted,
    classify,
    decide,
)

__all__ = [
    "BatchOrchestrator",
    "ConsoleReporter",
    "IntakeClient",
    "PayloadLifecycleSM",
    "ProgressSink",
    "RetryController",
    "RetryDecision",
    "TransportError",
    "UploadAborted",
    "UploadClient",
    "classify",
    "decide",
]
