"""Error taxonomy for webhook handling.

Each error knows the HTTP status and JSON body it maps to, so the orchestrator
can turn any fatal failure into a well-formed `{"success": false, ...}` reply.
Scheduling failures are deliberately absent: they are reported as a
`ScheduleOutcome` value, never raised.
"""

from typing import Any


class WebhookError(Exception):
    """Base class for failures that abort the webhook pipeline."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidRequest(WebhookError):
    """Notification payload is missing fields or carries an unknown status."""

    status_code = 400


class ConfigurationMissing(WebhookError):
    """Required provider credential is not configured."""

    status_code = 500


class UpstreamLookupFailed(WebhookError):
    """Provider payment lookup failed; status mirrors the provider's."""

    def __init__(self, message: str, status_code: int, details: Any = None) -> None:
        super().__init__(message, status_code=status_code, details=details)


class PersistenceFailed(WebhookError):
    """Payment record could not be inserted."""

    status_code = 500

    def __init__(self, message: str, details: Any = None, conflict: bool = False) -> None:
        super().__init__(message, details=details)
        self.conflict = conflict


class UnexpectedFailure(WebhookError):
    """Catch-all for anything not classified above."""

    status_code = 500
