"""Error taxonomy shared by the lifecycle engine, the sync coordinators and
the marketplace gateway.

``ValidationError`` is Protean's own: malformed input is rejected before any
request is dispatched. A partially failed bulk operation is not an exception;
it is reported through ``BulkOperationBatch``.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError

__all__ = [
    "ConflictError",
    "InvalidTransitionError",
    "NetworkError",
    "NotFoundError",
    "ValidationError",
    "error_code",
]


def _status_value(status) -> str:
    return getattr(status, "value", status)


class InvalidTransitionError(ValidationError):
    """No edge exists in the order transition graph from one status to another."""

    def __init__(self, from_status, to_status):
        self.from_status = _status_value(from_status)
        self.to_status = _status_value(to_status)
        super().__init__({"status": [f"Cannot transition from {self.from_status} to {self.to_status}"]})

    def __str__(self):
        return f"Cannot transition from {self.from_status} to {self.to_status}"


class NotFoundError(ObjectNotFoundError):
    """The order or product does not exist on the server."""

    def __init__(self, entity_id, kind="Order"):
        self.entity_id = str(entity_id)
        self.kind = kind
        super().__init__(f"{kind} `{self.entity_id}` does not exist")

    def __str__(self):
        return f"{self.kind} `{self.entity_id}` does not exist"


class ConflictError(Exception):
    """The server refused a mutation that conflicts with its state, e.g. stock depleted."""

    def __init__(self, detail="Conflict"):
        self.detail = detail
        super().__init__(detail)


class NetworkError(Exception):
    """A transient transport failure. Retrying is the caller's decision."""


def error_code(exc: Exception) -> str:
    """Return the short error code reported for ``exc`` in batch outcomes."""
    if isinstance(exc, InvalidTransitionError):
        return "InvalidTransition"
    if isinstance(exc, ValidationError):
        return "Validation"
    if isinstance(exc, NotFoundError):
        return "NotFound"
    if isinstance(exc, ConflictError):
        return "Conflict"
    if isinstance(exc, NetworkError):
        return "Network"
    return type(exc).__name__
