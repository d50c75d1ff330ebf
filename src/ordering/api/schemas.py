"""Pydantic request/response schemas for the marketplace order and membership API.

These are the external wire contracts (camelCase JSON), kept separate from
the Protean Order aggregate. ``OrderSchema`` converts in both directions so
the HTTP adapter and the stub API share one definition.
"""

from datetime import datetime

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from ordering.order.order import (
    CustomerInfo,
    Order,
    OrderLine,
    OrderStatus,
    ShippingAddress,
    StatusChange,
)

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


# ---------------------------------------------------------------------------
# Order representation
# ---------------------------------------------------------------------------
class OrderLineSchema(BaseModel):
    product_id: str
    title: str
    price: float = Field(ge=0)
    quantity: int = Field(ge=1)
    image: str | None = None

    model_config = _CAMEL


class CustomerSchema(BaseModel):
    id: str
    name: str | None = None
    email: str | None = None

    model_config = _CAMEL


class AddressSchema(BaseModel):
    full_name: str | None = None
    phone_number: str | None = None
    address_line1: str
    address_line2: str | None = None
    city: str
    state: str | None = None
    postal_code: str
    country: str

    model_config = _CAMEL


class StatusChangeSchema(BaseModel):
    status: OrderStatus
    note: str | None = None
    timestamp: datetime

    model_config = _CAMEL


class OrderSchema(BaseModel):
    id: str
    order_number: str
    status: OrderStatus
    items: list[OrderLineSchema] = []
    customer: CustomerSchema | None = None
    shipping_address: AddressSchema | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    estimated_delivery: str | None = None
    total_price: float = 0.0
    status_history: list[StatusChangeSchema] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = _CAMEL

    @classmethod
    def from_order(cls, order: Order) -> "OrderSchema":
        customer = None
        if order.customer:
            customer = CustomerSchema(
                id=str(order.customer.customer_id),
                name=order.customer.name,
                email=order.customer.email,
            )
        address = None
        if order.shipping_address:
            address = AddressSchema(
                full_name=order.shipping_address.full_name,
                phone_number=order.shipping_address.phone_number,
                address_line1=order.shipping_address.address_line1,
                address_line2=order.shipping_address.address_line2,
                city=order.shipping_address.city,
                state=order.shipping_address.state,
                postal_code=order.shipping_address.postal_code,
                country=order.shipping_address.country,
            )
        return cls(
            id=str(order.id),
            order_number=order.order_number,
            status=OrderStatus(order.status),
            items=[
                OrderLineSchema(
                    product_id=str(line.product_id),
                    title=line.title,
                    price=line.unit_price,
                    quantity=line.quantity,
                    image=line.image,
                )
                for line in (order.items or [])
            ],
            customer=customer,
            shipping_address=address,
            tracking_number=order.tracking_number,
            carrier=order.carrier,
            estimated_delivery=order.estimated_delivery,
            total_price=order.total_price or 0.0,
            status_history=[
                StatusChangeSchema(
                    status=OrderStatus(entry.status),
                    note=entry.note,
                    timestamp=entry.changed_at,
                )
                for entry in (order.status_history or [])
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    def to_order(self) -> Order:
        return Order(
            id=self.id,
            order_number=self.order_number,
            status=self.status.value,
            items=[
                OrderLine(
                    product_id=line.product_id,
                    title=line.title,
                    unit_price=line.price,
                    quantity=line.quantity,
                    image=line.image,
                )
                for line in self.items
            ],
            customer=(
                CustomerInfo(
                    customer_id=self.customer.id,
                    name=self.customer.name,
                    email=self.customer.email,
                )
                if self.customer
                else None
            ),
            shipping_address=(
                ShippingAddress(**self.shipping_address.model_dump()) if self.shipping_address else None
            ),
            tracking_number=self.tracking_number,
            carrier=self.carrier,
            estimated_delivery=self.estimated_delivery,
            total_price=self.total_price,
            status_history=[
                StatusChange(
                    status=entry.status.value,
                    note=entry.note,
                    changed_at=entry.timestamp,
                )
                for entry in self.status_history
            ],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class UpdateStatusRequest(BaseModel):
    status: OrderStatus
    note: str | None = Field(default=None, max_length=500)

    model_config = {
        **_CAMEL,
        "json_schema_extra": {"examples": [{"status": "processing", "note": "Packing started"}]},
    }


class ShipOrderRequest(BaseModel):
    tracking_number: str = Field(min_length=1)
    carrier: str = Field(min_length=1)
    estimated_delivery: str | None = None

    model_config = {
        **_CAMEL,
        "json_schema_extra": {
            "examples": [
                {
                    "trackingNumber": "1Z999AA10123456784",
                    "carrier": "UPS",
                    "estimatedDelivery": "2026-10-25",
                }
            ]
        },
    }


class BulkStatusRequest(BaseModel):
    ids: list[str] = Field(min_length=1)
    status: OrderStatus

    model_config = _CAMEL


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class BulkItemResultSchema(BaseModel):
    id: str
    ok: bool
    error: str | None = None
    reason: str | None = None

    model_config = _CAMEL


class BulkStatusResponse(BaseModel):
    results: list[BulkItemResultSchema]


class SnapshotResponse(BaseModel):
    items: list[str]
    version: int


class StatusResponse(BaseModel):
    status: str = "ok"
