from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .models import AutomationStatus

if TYPE_CHECKING:
    from .models import ExecutionRecord


class AutomationFailure(Exception):
    """A node failure carrying its HTTP mapping and health severity."""

    http_status = 500
    default_severity = AutomationStatus.ERROR

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        severity: AutomationStatus | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.http_status = http_status if http_status is not None else type(self).http_status
        self.severity = severity if severity is not None else type(self).default_severity
        self.details = details
        self.execution: ExecutionRecord | None = None

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"message": self.message}
        if self.details:
            detail["details"] = self.details
        return detail


class NotFound(AutomationFailure):
    http_status = 404


class NotConfigured(AutomationFailure):
    http_status = 503
    default_severity = AutomationStatus.MONITORING


class RemoteUnavailable(AutomationFailure):
    http_status = 503
    default_severity = AutomationStatus.WARNING


class RemoteRejected(AutomationFailure):
    http_status = 502
    default_severity = AutomationStatus.WARNING

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> RemoteRejected:
        severity = AutomationStatus.WARNING if status_code >= 500 else AutomationStatus.MONITORING
        return cls(
            f"n8n responded with status {status_code}",
            severity=severity,
            details={"status": status_code, "responseBody": body},
        )


class PartialItemFailure(AutomationFailure):
    default_severity = AutomationStatus.WARNING


class Uncategorized(AutomationFailure):
    pass
