"""Marketplace gateway ports (abstract interfaces).

The lifecycle, sync and bulk coordinators program against these ports;
adapters are swapped via configuration. Every method is a coroutine because
each one is a network round trip in production.

Adapters raise the errors from ``ordering.exceptions``:
``NotFoundError`` (404), ``InvalidTransitionError`` / ``ConflictError``
(409), ``ValidationError`` (400/422) and ``NetworkError`` (transport
failures and 5xx).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from ordering.membership.sync import ServerSnapshot
from ordering.order.order import Order


class MembershipKind(Enum):
    CART = "cart"
    WISHLIST = "wishlist"


@dataclass(frozen=True)
class BulkItemResult:
    """One entry of a ``POST /orders/bulk-status`` response."""

    id: str
    ok: bool
    error: str | None = None
    reason: str | None = None


class OrderService(ABC):
    """Seller-side order endpoints."""

    @abstractmethod
    async def fetch_order(self, order_id: str) -> Order:
        """Return the authoritative order."""
        ...

    @abstractmethod
    async def update_status(self, order_id: str, status: str, note: str | None = None) -> Order:
        """``PATCH /orders/{id}/status``. Returns the updated order."""
        ...

    @abstractmethod
    async def ship_order(
        self,
        order_id: str,
        tracking_number: str,
        carrier: str,
        estimated_delivery: str | None = None,
    ) -> Order:
        """``PATCH /orders/{id}/ship``. Returns the shipped order."""
        ...

    @abstractmethod
    async def deliver_order(self, order_id: str) -> Order:
        """``PATCH /orders/{id}/deliver``. Returns the delivered order."""
        ...

    @abstractmethod
    async def bulk_update_status(self, order_ids: list[str], status: str) -> list[BulkItemResult]:
        """``POST /orders/bulk-status``. One result per id, in request order."""
        ...


class MembershipService(ABC):
    """Cart and wishlist membership endpoints."""

    @abstractmethod
    async def add_member(self, kind: MembershipKind, product_id: str) -> None:
        """``POST /{kind}/{productId}``."""
        ...

    @abstractmethod
    async def remove_member(self, kind: MembershipKind, product_id: str) -> None:
        """``DELETE /{kind}/{productId}``."""
        ...

    @abstractmethod
    async def fetch_snapshot(self, kind: MembershipKind) -> ServerSnapshot:
        """``GET /{kind}``. Returns the current authoritative membership."""
        ...
