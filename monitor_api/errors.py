"""Typed failures raised by the monitoring core.

The HTTP layer maps each class to a stable error code and status:
- NotFound -> 404
- Forbidden -> 403
- AlreadyResolved / InvariantViolation -> 409
- ProviderUnavailable -> 503
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base class; carries a stable ``code`` and an HTTP-equivalent status."""

    code = "monitor_error"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(MonitorError):
    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} '{resource_id}' not found")


class AlreadyResolved(MonitorError):
    code = "already_resolved"
    status_code = 409

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Alert '{alert_id}' is already resolved")


class Forbidden(MonitorError):
    code = "forbidden"
    status_code = 403


class ProviderUnavailable(MonitorError):
    """The telemetry provider could not be asked; distinct from a sensor being offline."""

    code = "provider_unavailable"
    status_code = 503

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Telemetry provider unavailable during {operation}: {reason}")


class InvariantViolation(MonitorError):
    code = "open_alert_exists"
    status_code = 409

    def __init__(self, sensor_id: str, alert_type: str, existing_alert_id: str):
        self.sensor_id = sensor_id
        self.alert_type = alert_type
        self.existing_alert_id = existing_alert_id
        super().__init__(
            f"An open '{alert_type}' alert already exists for sensor '{sensor_id}' "
            f"(alert '{existing_alert_id}')"
        )
