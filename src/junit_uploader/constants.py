"""Project-wide named constants.

Constants defined here replace inline magic numbers across the codebase.
"""

# HTTP statuses that are never retried. 413 skips only the offending file.
ERROR_CODES_NO_RETRY: frozenset[int] = frozenset({400, 403, 413})

# HTTP statuses that stop the whole batch. Must stay a strict subset of
# ERROR_CODES_NO_RETRY.
ERROR_CODES_STOP_UPLOAD: frozenset[int] = frozenset({400, 403})

DEFAULT_MAX_CONCURRENCY: int = 20

# 5 retries after the initial attempt = 6 attempts in total.
DEFAULT_MAX_RETRIES: int = 5

REPORT_FILE_PATTERN: str = "*.xml"

ACCEPTED_ROOT_TAGS: frozenset[str] = frozenset({"testsuite", "testsuites"})

DEFAULT_SITE: str = "datadoghq.com"
INTAKE_PATH: str = "api/v2/cireport"
CIREPORT_VERSION: str = "2"
