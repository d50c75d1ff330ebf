"""Actions a bulk operation can apply, and the drag-and-drop command."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from protean.fields import Identifier, String

from ordering.domain import ordering
from ordering.gateway.port import MembershipKind
from ordering.order.order import OrderStatus, ShipmentDetails, parse_status


@dataclass(frozen=True)
class StatusAction:
    """Move every target order to ``status``.

    Shipping needs tracking data: ``shipments`` gives it per order id and
    ``shipment`` is the fallback for ids missing from that mapping.
    """

    status: OrderStatus
    note: str | None = None
    shipment: ShipmentDetails | None = None
    shipments: Mapping[str, ShipmentDetails] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "status", parse_status(self.status))

    def shipment_for(self, order_id) -> ShipmentDetails | None:
        return self.shipments.get(str(order_id), self.shipment)


@dataclass(frozen=True)
class MembershipAction:
    """Add (``desired=True``), remove (``False``) or toggle (``None``) products."""

    kind: MembershipKind
    desired: bool | None = None


@ordering.command(part_of="Order")
class MoveOrderCard:
    """Drag one order card to another status column."""

    order_id = Identifier(required=True)
    target_status = String(required=True, choices=OrderStatus)
    note = String(max_length=500)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    estimated_delivery = String(max_length=10)  # ISO date string

    def to_action(self) -> StatusAction:
        shipment = None
        if self.tracking_number or self.carrier:
            shipment = ShipmentDetails(
                tracking_number=self.tracking_number,
                carrier=self.carrier,
                estimated_delivery=self.estimated_delivery,
            )
        return StatusAction(status=self.target_status, note=self.note, shipment=shipment)
