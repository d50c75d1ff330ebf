"""Domain events for the Order aggregate.

Every status transition produced by the lifecycle engine carries exactly one
of these events on the new order value. Callers that persist or publish the
order pick them up from there; the engine itself never dispatches them.
"""

from protean.fields import DateTime, Identifier, String

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderConfirmed:
    """The seller accepted a pending order."""

    __version__ = 1

    order_id = Identifier(required=True)
    note = String()
    confirmed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderProcessing:
    """The seller started preparing the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    note = String()
    started_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderShipped:
    """The order was handed to a carrier with tracking details."""

    __version__ = 1

    order_id = Identifier(required=True)
    carrier = String(required=True)
    tracking_number = String(required=True)
    estimated_delivery = String()  # ISO date string
    shipped_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderOutForDelivery:
    """The carrier reported the parcel on its final delivery leg."""

    __version__ = 1

    order_id = Identifier(required=True)
    note = String()
    dispatched_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDelivered:
    """The order reached the customer."""

    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled before it could be delivered."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)
