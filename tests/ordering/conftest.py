import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


@pytest.fixture()
def engine():
    from ordering.order.lifecycle import OrderLifecycleEngine

    return OrderLifecycleEngine()


@pytest.fixture()
def marketplace(engine):
    from ordering.gateway import set_marketplace
    from ordering.gateway.fake_adapter import FakeMarketplace

    fake = FakeMarketplace(engine)
    set_marketplace(fake)
    return fake


@pytest.fixture()
def make_order():
    from ordering.order.order import Order

    counter = iter(range(1, 10_000))

    def _make(**overrides):
        number = next(counter)
        defaults = {
            "order_number": f"ORD-{number:04d}",
            "customer": {"customer_id": f"cust-{number}", "name": "Ada Buyer", "email": "ada@example.com"},
            "items_data": [
                {"product_id": "prod-1", "title": "Desk Lamp", "unit_price": 25.0, "quantity": 2},
            ],
        }
        defaults.update(overrides)
        return Order.create(**defaults)

    return _make


# Path through the graph used to reach each status
_PATH = {
    "pending": [],
    "confirmed": ["confirmed"],
    "processing": ["confirmed", "processing"],
    "shipped": ["confirmed", "processing", "shipped"],
    "out_for_delivery": ["confirmed", "processing", "shipped", "out_for_delivery"],
    "delivered": ["confirmed", "processing", "shipped", "delivered"],
    "canceled": ["canceled"],
}


@pytest.fixture()
def order_at(engine, make_order):
    """Build an order and walk it to ``status`` through the lifecycle engine."""
    from ordering.order.order import OrderStatus, ShipmentDetails

    def _at(status, **overrides):
        status = getattr(status, "value", status)
        order = make_order(**overrides)
        for step in _PATH[status]:
            shipment = None
            if step == "shipped":
                shipment = ShipmentDetails(tracking_number="1Z999AA10123456784", carrier="UPS")
            order = engine.update_status(order, OrderStatus(step), shipment=shipment)
        order._events.clear()
        return order

    return _at
