"""Client session: the seller console's state and its sync machinery.

One session wires the lifecycle engine, the order board, the cart and
wishlist membership syncs, the bulk coordinator and the snapshot poller to a
marketplace adapter. ``close()`` cancels polling and drops every pending
intent and board card, so nothing resolves into a closed session.
"""

import structlog

from ordering.board.kanban import OrderBoard
from ordering.bulk.coordinator import BulkOperationCoordinator
from ordering.config import SyncSettings
from ordering.gateway import build_marketplace
from ordering.gateway.port import MembershipKind, MembershipService, OrderService
from ordering.membership.dispatch import MembershipSync
from ordering.membership.poller import SnapshotPoller
from ordering.membership.sync import OptimisticSyncCoordinator
from ordering.order.lifecycle import OrderLifecycleEngine

logger = structlog.get_logger(__name__)


class ClientSession:
    def __init__(
        self,
        settings: SyncSettings | None = None,
        order_service: OrderService | None = None,
        membership_service: MembershipService | None = None,
    ) -> None:
        self.settings = settings or SyncSettings.from_env()
        self._owned = None
        if order_service is None or membership_service is None:
            marketplace = build_marketplace(self.settings)
            self._owned = marketplace
            order_service = order_service or marketplace
            membership_service = membership_service or marketplace
        self.order_service = order_service
        self.membership_service = membership_service

        self.engine = OrderLifecycleEngine(self.settings.cancellation_policy())
        self.board = OrderBoard()
        self.cart = MembershipSync(
            MembershipKind.CART,
            OptimisticSyncCoordinator(self.settings.staleness_window, name="cart"),
            membership_service,
        )
        self.wishlist = MembershipSync(
            MembershipKind.WISHLIST,
            OptimisticSyncCoordinator(self.settings.staleness_window, name="wishlist"),
            membership_service,
        )
        self.bulk = BulkOperationCoordinator(
            self.engine,
            order_service,
            board=self.board,
            memberships={MembershipKind.CART: self.cart, MembershipKind.WISHLIST: self.wishlist},
            max_concurrency=self.settings.bulk_max_concurrency,
        )
        self.poller = SnapshotPoller([self.cart, self.wishlist], interval=self.settings.snapshot_poll_interval)
        self.closed = False

    async def __aenter__(self) -> "ClientSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def membership(self, kind: MembershipKind) -> MembershipSync:
        return self.cart if MembershipKind(kind) == MembershipKind.CART else self.wishlist

    async def start(self) -> None:
        """Load the first snapshots and start polling."""
        await self.poller.poll_once()
        self.poller.start()
        logger.info("Client session started", adapter=self.settings.adapter)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.poller.stop()
        self.cart.coordinator.clear()
        self.wishlist.coordinator.clear()
        self.board.clear()
        if self._owned is not None and hasattr(self._owned, "aclose"):
            await self._owned.aclose()
        logger.info("Client session closed")
