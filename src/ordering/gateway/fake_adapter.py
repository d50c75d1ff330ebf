"""Fake marketplace adapter: an in-memory authoritative server.

Holds orders and cart/wishlist membership in memory and applies the same
lifecycle engine the client uses, so it behaves like the real backend's
contract. Used by tests, by local development and by the stub API.

Configurable failure behavior:
- ``configure(should_succeed=False)`` fails every call with NetworkError
- ``fail_next(key, exc)`` fails the next call touching ``key`` (order id or
  product id) with ``exc``
- ``mark_out_of_stock(product_id)`` makes cart adds for it conflict
- ``latency`` delays every call, ``delays[key]`` delays calls for one key
"""

import asyncio

from ordering.exceptions import ConflictError, NetworkError, NotFoundError, ValidationError, error_code
from ordering.gateway.port import BulkItemResult, MembershipKind, MembershipService, OrderService
from ordering.membership.sync import ServerSnapshot
from ordering.order.lifecycle import OrderLifecycleEngine
from ordering.order.order import Order


class FakeMarketplace(OrderService, MembershipService):
    """Configurable fake marketplace backend."""

    def __init__(self, engine: OrderLifecycleEngine | None = None) -> None:
        self.engine = engine or OrderLifecycleEngine()
        self.should_succeed: bool = True
        self.failure_reason: str = "Marketplace unavailable"
        self.latency: float = 0.0
        self.delays: dict[str, float] = {}
        self.calls: list[dict] = []
        self._orders: dict[str, Order] = {}
        self._members: dict[MembershipKind, set[str]] = {kind: set() for kind in MembershipKind}
        self._versions: dict[MembershipKind, int] = {kind: 0 for kind in MembershipKind}
        self._catalogue: set[str] | None = None
        self._out_of_stock: set[str] = set()
        self._failures: dict[str, list[Exception]] = {}

    # -------------------------------------------------------------------
    # Test / development controls
    # -------------------------------------------------------------------
    def configure(self, should_succeed: bool = True, failure_reason: str = "Marketplace unavailable") -> None:
        """Configure the marketplace behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def seed(self, *orders: Order) -> None:
        for order in orders:
            self._orders[str(order.id)] = order

    def stock(self, *product_ids: str) -> None:
        """Restrict membership adds to a known catalogue; unknown products give 404."""
        self._catalogue = (self._catalogue or set()) | {str(pid) for pid in product_ids}

    def mark_out_of_stock(self, product_id: str) -> None:
        self._out_of_stock.add(str(product_id))

    def fail_next(self, key: str, exc: Exception) -> None:
        self._failures.setdefault(str(key), []).append(exc)

    def order(self, order_id: str) -> Order:
        """Return the stored order without going through the async port."""
        return self._orders[str(order_id)]

    def members(self, kind: MembershipKind) -> frozenset:
        return frozenset(self._members[kind])

    async def _call(self, method: str, key: str, **kwargs) -> None:
        self.calls.append({"method": method, "key": key, **kwargs})
        delay = self.delays.get(key, self.latency)
        if delay:
            await asyncio.sleep(delay)
        if not self.should_succeed:
            raise NetworkError(self.failure_reason)
        queued = self._failures.get(key)
        if queued:
            raise queued.pop(0)

    def _get(self, order_id: str) -> Order:
        order = self._orders.get(str(order_id))
        if order is None:
            raise NotFoundError(order_id)
        return order

    def _store(self, order: Order) -> Order:
        self._orders[str(order.id)] = order
        return order

    # -------------------------------------------------------------------
    # OrderService
    # -------------------------------------------------------------------
    async def fetch_order(self, order_id: str) -> Order:
        await self._call("fetch_order", str(order_id))
        return self._get(order_id)

    async def update_status(self, order_id: str, status: str, note: str | None = None) -> Order:
        await self._call("update_status", str(order_id), status=status, note=note)
        order = self._get(order_id)
        # The generic status endpoint carries no tracking data, so it cannot ship
        return self._store(self.engine.update_status(order, status, note=note))

    async def ship_order(
        self,
        order_id: str,
        tracking_number: str,
        carrier: str,
        estimated_delivery: str | None = None,
    ) -> Order:
        await self._call(
            "ship_order",
            str(order_id),
            tracking_number=tracking_number,
            carrier=carrier,
            estimated_delivery=estimated_delivery,
        )
        order = self._get(order_id)
        return self._store(self.engine.ship(order, tracking_number, carrier, estimated_delivery))

    async def deliver_order(self, order_id: str) -> Order:
        await self._call("deliver_order", str(order_id))
        order = self._get(order_id)
        return self._store(self.engine.deliver(order))

    async def bulk_update_status(self, order_ids: list[str], status: str) -> list[BulkItemResult]:
        await self._call("bulk_update_status", ",".join(order_ids), status=status)
        results = []
        for order_id in order_ids:
            try:
                order = self._get(order_id)
                self._store(self.engine.update_status(order, status))
            except (ValidationError, NotFoundError, ConflictError) as exc:
                results.append(BulkItemResult(id=order_id, ok=False, error=error_code(exc), reason=str(exc)))
            else:
                results.append(BulkItemResult(id=order_id, ok=True))
        return results

    # -------------------------------------------------------------------
    # MembershipService
    # -------------------------------------------------------------------
    async def add_member(self, kind: MembershipKind, product_id: str) -> None:
        product_id = str(product_id)
        await self._call("add_member", product_id, kind=kind.value)
        if self._catalogue is not None and product_id not in self._catalogue:
            raise NotFoundError(product_id, kind="Product")
        if kind == MembershipKind.CART and product_id in self._out_of_stock:
            raise ConflictError(f"Product {product_id} is out of stock")
        self._members[kind].add(product_id)
        self._versions[kind] += 1

    async def remove_member(self, kind: MembershipKind, product_id: str) -> None:
        product_id = str(product_id)
        await self._call("remove_member", product_id, kind=kind.value)
        self._members[kind].discard(product_id)
        self._versions[kind] += 1

    async def fetch_snapshot(self, kind: MembershipKind) -> ServerSnapshot:
        await self._call("fetch_snapshot", kind.value)
        return ServerSnapshot.of(self._members[kind], version=self._versions[kind])

