from typing import List, Optional


class TelemetryAPIError(Exception):
    """Base error translated into the JSON envelope by the app's exception handler."""

    status_code = 500

    def __init__(self, message: str, details: Optional[List[str]] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class ValidationError(TelemetryAPIError):
    status_code = 400

    def __init__(self, details: List[str], message: str = "Validation failed"):
        super().__init__(message, details=details)


class InternalError(TelemetryAPIError):
    status_code = 500


class PublishError(Exception):
    """Broker unreachable or write rejected. Never surfaced to HTTP clients."""
