"""Courier exception hierarchy.

Administrative errors (validation, not found, state conflicts) are raised
synchronously to the caller. Delivery errors (transport failures, receiver
rejections) are recorded against the delivery and never reach the code that
published the domain event.

All exceptions inherit from CourierError for easy catching.
"""

from __future__ import annotations


class CourierError(Exception):
    """Base exception for all Courier errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "courier_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(CourierError):
    """Invalid webhook configuration.

    Raised for malformed URLs, empty or oversized event type sets and
    out-of-range retry/timeout settings. Never retried.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(CourierError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource ("webhook" or "delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class ConflictError(CourierError):
    """A conditional write lost a race.

    Raised when a record changed between read and write (version mismatch)
    or when a delivery claim is no longer held by the writer.
    """

    code: str = "conflict"


class DeliveryStateError(CourierError):
    """Operation not allowed for the delivery's current status.

    Attributes:
        delivery_id: ID of the delivery.
        status: Status the delivery was in.
    """

    code: str = "invalid_delivery_state"

    def __init__(self, delivery_id: str, status: str, message: str | None = None) -> None:
        self.delivery_id = delivery_id
        self.status = status
        super().__init__(message or f"delivery {delivery_id} cannot be retried from {status}")


class ConfigurationError(CourierError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"


class TransportError(CourierError):
    """Network failure or timeout while calling a receiver.

    Retryable. Only visible in delivery history.
    """

    code: str = "transport_error"


class ReceiverRejected(CourierError):
    """Receiver answered with a 4xx status.

    Terminal: the request is assumed to be permanently incompatible.

    Attributes:
        status_code: HTTP status returned by the receiver.
        body: Response body (possibly truncated).
    """

    code: str = "receiver_rejected"

    def __init__(self, status_code: int, body: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {(body or '')[:200]}")


class ReceiverUnavailable(CourierError):
    """Receiver answered with a 5xx (or other non-2xx, non-4xx) status.

    Retryable until the delivery runs out of attempts.

    Attributes:
        status_code: HTTP status returned by the receiver.
        body: Response body (possibly truncated).
    """

    code: str = "receiver_unavailable"

    def __init__(self, status_code: int, body: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {(body or '')[:200]}")
