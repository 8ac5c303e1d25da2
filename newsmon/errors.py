"""Exceptions that abort an ingestion run."""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for run-aborting errors. Carries an HTTP-style status code."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(MonitorError):
    """Missing API key, disabled source, unknown source name."""

    status_code = 400


class QuotaExhaustedError(MonitorError):
    """The source's request quota for the current period is used up."""

    status_code = 429

    def __init__(self, message: str, requests: int = 0, limit: int = 0):
        super().__init__(message)
        self.requests = requests
        self.limit = limit


class SourceError(MonitorError):
    """The external feed was unreachable or returned an error."""

    status_code = 502
