"""Order aggregate (CQRS): the seller-side view of a marketplace order.

The aggregate is treated as a value by the lifecycle engine: every status
transition builds a new Order through ``evolve()`` and leaves the original
untouched, so a transition can be validated and rolled back without any
I/O having happened.

State Machine:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → OUT_FOR_DELIVERY → DELIVERED
    CONFIRMED → SHIPPED
    SHIPPED → DELIVERED
    {cancellation policy sources} → CANCELED
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from ordering.domain import ordering


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELED})

# Statuses in which the parcel is with the carrier
IN_TRANSIT_STATUSES = frozenset({OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY})

# Transition map without cancellation; cancel edges come from CancellationPolicy
VALID_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.SHIPPED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),  # Terminal
    OrderStatus.CANCELED: frozenset(),  # Terminal
}


def parse_status(value) -> OrderStatus:
    """Coerce a status name or enum member into an ``OrderStatus``."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status: {value}"]}) from None


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class CustomerInfo:
    """The buyer as shown to the seller."""

    customer_id = Identifier(required=True)
    name = String(max_length=255)
    email = String(max_length=255)


@ordering.value_object(part_of="Order")
class ShippingAddress:
    """Where the order ships to, captured at checkout and never changed afterwards."""

    full_name = String(max_length=255)
    phone_number = String(max_length=50)
    address_line1 = String(required=True, max_length=255)
    address_line2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)


@ordering.value_object(part_of="Order")
class ShipmentDetails:
    """Carrier handoff data that must accompany the move into SHIPPED."""

    tracking_number = String(required=True, max_length=255)
    carrier = String(required=True, max_length=100)
    estimated_delivery = String(max_length=10)  # ISO date string


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderLine:
    product_id = Identifier(required=True)
    title = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    image = String(max_length=500)


@ordering.entity(part_of="Order")
class StatusChange:
    """One entry of the order's status timeline."""

    status = String(required=True, choices=OrderStatus)
    note = String(max_length=500)
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=50)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    items = HasMany(OrderLine)
    customer = ValueObject(CustomerInfo)
    shipping_address = ValueObject(ShippingAddress)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    estimated_delivery = String(max_length=10)  # ISO date string
    total_price = Float(default=0.0, min_value=0.0)
    status_history = HasMany(StatusChange)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def tracking_number_and_carrier_travel_together(self):
        if bool(self.tracking_number) != bool(self.carrier):
            raise ValidationError({"tracking_number": ["Tracking number and carrier must be set together"]})

    @invariant.post
    def orders_with_the_carrier_have_tracking(self):
        if self.status in {s.value for s in IN_TRANSIT_STATUSES} and not self.tracking_number:
            raise ValidationError({"tracking_number": [f"An order in {self.status} must carry tracking details"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, order_number, customer, items_data, shipping_address=None, total_price=None):
        """Create a new PENDING order.

        Args:
            order_number: Human-facing order number, e.g. ``ORD-1001``.
            customer: Dict with customer_id, name, email.
            items_data: List of dicts with product_id, title, unit_price,
                        quantity and optionally image.
            shipping_address: Dict with the ShippingAddress fields.
            total_price: Overrides the total computed from the lines.
        """
        now = datetime.now(UTC)
        items = [OrderLine(**item) for item in items_data]
        if total_price is None:
            total_price = sum(item.unit_price * item.quantity for item in items)

        return cls(
            order_number=order_number,
            status=OrderStatus.PENDING.value,
            items=items,
            customer=CustomerInfo(**customer),
            shipping_address=ShippingAddress(**shipping_address) if shipping_address else None,
            total_price=total_price,
            status_history=[
                StatusChange(
                    status=OrderStatus.PENDING.value,
                    note="Order placed",
                    changed_at=now,
                )
            ],
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Value semantics
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATUSES

    def evolve(self, status: OrderStatus, note: str | None = None, **changes) -> "Order":
        """Return a copy of this order moved to ``status``.

        The copy shares identity with this order, gets a fresh status history
        entry and ``updated_at``, and takes any field overrides in ``changes``.
        This order is not modified.
        """
        now = datetime.now(UTC)
        history = [
            StatusChange(
                id=entry.id,
                status=entry.status,
                note=entry.note,
                changed_at=entry.changed_at,
            )
            for entry in (self.status_history or [])
        ]
        history.append(StatusChange(status=status.value, note=note, changed_at=now))

        fields = {
            "id": self.id,
            "order_number": self.order_number,
            "status": status.value,
            "items": self._copy_items(),
            "customer": self.customer,
            "shipping_address": self.shipping_address,
            "tracking_number": self.tracking_number,
            "carrier": self.carrier,
            "estimated_delivery": self.estimated_delivery,
            "total_price": self.total_price,
            "status_history": history,
            "created_at": self.created_at,
            "updated_at": now,
        }
        fields.update(changes)
        return Order(**fields)

    def _copy_items(self):
        return [
            OrderLine(
                id=line.id,
                product_id=line.product_id,
                title=line.title,
                unit_price=line.unit_price,
                quantity=line.quantity,
                image=line.image,
            )
            for line in (self.items or [])
        ]
