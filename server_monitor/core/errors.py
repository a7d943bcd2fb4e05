"""Exception hierarchy for the server monitor."""

from typing import Optional


class MonitorError(Exception):
    """Base exception for all monitor errors."""


class ConfigurationError(MonitorError):
    """Raised at startup when a configuration value is missing or out of range."""


class FetchFailure(MonitorError):
    """The live snapshot was unavailable or malformed. The cycle is aborted."""


class RecordValidationFailure(MonitorError):
    """A single record carries an unusable timestamp. Only that record is degraded."""

    def __init__(self, message: str, job_id: Optional[str] = None, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.field = field


class StoreScanFailure(MonitorError):
    """Tracked state could not be read. The cycle is aborted."""


class BatchCommitFailure(MonitorError):
    """The atomic batch was rejected. Nothing from the batch is visible."""
