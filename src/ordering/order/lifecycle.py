"""Order lifecycle engine: validates and applies order status transitions.

Transitions are synchronous and pure: each one checks the transition graph,
then returns a new Order carrying the status change, its history entry and
exactly one domain event. The input order is never modified, so callers can
validate a whole batch before any request reaches the network.
"""

from collections.abc import Iterable
from datetime import UTC, date, datetime

from protean.exceptions import ValidationError

from ordering.exceptions import InvalidTransitionError
from ordering.order.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderDelivered,
    OrderOutForDelivery,
    OrderProcessing,
    OrderShipped,
)
from ordering.order.order import (
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    Order,
    OrderStatus,
    ShipmentDetails,
    parse_status,
)

_STATUS_UPDATED_NOTE = "Status updated by seller"

DEFAULT_CANCELLABLE_STATUSES = frozenset(
    {
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
    }
)


class CancellationPolicy:
    """The set of statuses from which an order may be cancelled.

    The seller console never exposes cancellation, so the allowed sources
    are configuration rather than a property of the graph. The default stops
    at PROCESSING: once the parcel is with the carrier it can no longer be
    cancelled. Terminal statuses can never be sources.
    """

    def __init__(self, sources: Iterable = DEFAULT_CANCELLABLE_STATUSES):
        sources = frozenset(parse_status(s) for s in sources)
        terminal = sources & TERMINAL_STATUSES
        if terminal:
            names = ", ".join(sorted(s.value for s in terminal))
            raise ValidationError({"cancellable_statuses": [f"Terminal statuses cannot be cancelled: {names}"]})
        self.sources = sources

    @classmethod
    def all_non_terminal(cls) -> "CancellationPolicy":
        return cls(s for s in OrderStatus if s not in TERMINAL_STATUSES)

    @classmethod
    def from_names(cls, names: str) -> "CancellationPolicy":
        """Build a policy from a comma-separated list such as ``"pending,confirmed"``."""
        return cls(name.strip() for name in names.split(",") if name.strip())

    def allows(self, status: OrderStatus) -> bool:
        return status in self.sources

    def __repr__(self):
        return f"CancellationPolicy({sorted(s.value for s in self.sources)})"


class OrderLifecycleEngine:
    def __init__(self, cancellation_policy: CancellationPolicy | None = None):
        self.cancellation_policy = cancellation_policy or CancellationPolicy()

    # -------------------------------------------------------------------
    # Transition graph
    # -------------------------------------------------------------------
    def allowed_targets(self, status) -> frozenset:
        """Statuses directly reachable from ``status``."""
        status = parse_status(status)
        targets = set(VALID_TRANSITIONS[status])
        if self.cancellation_policy.allows(status):
            targets.add(OrderStatus.CANCELED)
        return frozenset(targets)

    def can_transition(self, status, target) -> bool:
        return parse_status(target) in self.allowed_targets(status)

    def transitions(self) -> frozenset:
        """Every ``(from, to)`` pair on the graph, cancellation included."""
        return frozenset((source, target) for source in OrderStatus for target in self.allowed_targets(source))

    def _assert_can_transition(self, order: Order, target: OrderStatus) -> None:
        current = OrderStatus(order.status)
        if target not in self.allowed_targets(current):
            raise InvalidTransitionError(current, target)

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def confirm(self, order: Order, note: str | None = None) -> Order:
        self._assert_can_transition(order, OrderStatus.CONFIRMED)
        updated = order.evolve(OrderStatus.CONFIRMED, note or "Order confirmed by seller")
        updated.raise_(
            OrderConfirmed(
                order_id=str(order.id),
                note=note,
                confirmed_at=updated.updated_at,
            )
        )
        return updated

    def process(self, order: Order, note: str | None = None) -> Order:
        self._assert_can_transition(order, OrderStatus.PROCESSING)
        updated = order.evolve(OrderStatus.PROCESSING, note or "Order is being prepared")
        updated.raise_(
            OrderProcessing(
                order_id=str(order.id),
                note=note,
                started_at=updated.updated_at,
            )
        )
        return updated

    def ship(
        self,
        order: Order,
        tracking_number: str,
        carrier: str,
        estimated_delivery: str | None = None,
        note: str | None = None,
    ) -> Order:
        """Move the order into SHIPPED together with its tracking details.

        Only CONFIRMED and PROCESSING orders can ship. The tracking number and
        carrier land in the same order value as the status, so no observer
        can see a SHIPPED order without them.
        """
        self._assert_can_transition(order, OrderStatus.SHIPPED)
        shipment = _shipment_details(tracking_number, carrier, estimated_delivery)

        updated = order.evolve(
            OrderStatus.SHIPPED,
            note or f"Shipped via {shipment.carrier} - Tracking: {shipment.tracking_number}",
            tracking_number=shipment.tracking_number,
            carrier=shipment.carrier,
            estimated_delivery=shipment.estimated_delivery,
        )
        updated.raise_(
            OrderShipped(
                order_id=str(order.id),
                carrier=shipment.carrier,
                tracking_number=shipment.tracking_number,
                estimated_delivery=shipment.estimated_delivery,
                shipped_at=updated.updated_at,
            )
        )
        return updated

    def mark_out_for_delivery(self, order: Order, note: str | None = None) -> Order:
        self._assert_can_transition(order, OrderStatus.OUT_FOR_DELIVERY)
        updated = order.evolve(OrderStatus.OUT_FOR_DELIVERY, note or "Out for delivery")
        updated.raise_(
            OrderOutForDelivery(
                order_id=str(order.id),
                note=note,
                dispatched_at=updated.updated_at,
            )
        )
        return updated

    def deliver(self, order: Order, note: str | None = None) -> Order:
        """Mark a SHIPPED or OUT_FOR_DELIVERY order as delivered.

        Not idempotent: delivering an already delivered order is an
        ``InvalidTransitionError('delivered', 'delivered')``.
        """
        self._assert_can_transition(order, OrderStatus.DELIVERED)
        updated = order.evolve(OrderStatus.DELIVERED, note or "Order delivered successfully")
        updated.raise_(
            OrderDelivered(
                order_id=str(order.id),
                delivered_at=updated.updated_at,
            )
        )
        return updated

    def cancel(self, order: Order, reason: str | None = None) -> Order:
        self._assert_can_transition(order, OrderStatus.CANCELED)
        updated = order.evolve(OrderStatus.CANCELED, reason or "Order cancelled")
        updated.raise_(
            OrderCancelled(
                order_id=str(order.id),
                previous_status=order.status,
                reason=reason,
                cancelled_at=updated.updated_at,
            )
        )
        return updated

    # -------------------------------------------------------------------
    # Generic entry point (bulk actions, drag-and-drop)
    # -------------------------------------------------------------------
    def update_status(
        self,
        order: Order,
        target,
        note: str | None = None,
        shipment: ShipmentDetails | None = None,
    ) -> Order:
        """Move ``order`` to ``target`` through the matching transition.

        The graph is checked first, so a missing edge is always reported as
        ``InvalidTransitionError`` even when other input is missing too.
        A SHIPPED target needs ``shipment``.
        """
        target = parse_status(target)
        self._assert_can_transition(order, target)

        if target == OrderStatus.CONFIRMED:
            return self.confirm(order, note or _STATUS_UPDATED_NOTE)
        if target == OrderStatus.PROCESSING:
            return self.process(order, note or _STATUS_UPDATED_NOTE)
        if target == OrderStatus.SHIPPED:
            if shipment is None:
                raise ValidationError({"shipment": ["Tracking number and carrier are required to ship an order"]})
            return self.ship(
                order,
                tracking_number=shipment.tracking_number,
                carrier=shipment.carrier,
                estimated_delivery=shipment.estimated_delivery,
                note=note,
            )
        if target == OrderStatus.OUT_FOR_DELIVERY:
            return self.mark_out_for_delivery(order, note or _STATUS_UPDATED_NOTE)
        if target == OrderStatus.DELIVERED:
            return self.deliver(order, note)
        return self.cancel(order, note)


def _shipment_details(tracking_number, carrier, estimated_delivery) -> ShipmentDetails:
    """Validate raw shipping input into a ShipmentDetails value object."""
    errors = {}
    tracking_number = (tracking_number or "").strip()
    carrier = (carrier or "").strip()
    if not tracking_number:
        errors["tracking_number"] = ["Tracking number is required"]
    if not carrier:
        errors["carrier"] = ["Carrier is required"]
    if estimated_delivery:
        if isinstance(estimated_delivery, datetime):
            estimated_delivery = estimated_delivery.astimezone(UTC).date()
        if isinstance(estimated_delivery, date):
            estimated_delivery = estimated_delivery.isoformat()
        else:
            try:
                date.fromisoformat(estimated_delivery)
            except ValueError:
                errors["estimated_delivery"] = ["Estimated delivery must be an ISO date (YYYY-MM-DD)"]
    if errors:
        raise ValidationError(errors)

    return ShipmentDetails(
        tracking_number=tracking_number,
        carrier=carrier,
        estimated_delivery=estimated_delivery or None,
    )
