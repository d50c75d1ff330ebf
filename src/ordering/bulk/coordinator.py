"""Bulk operation coordinator.

Applies one action to many orders (or products) concurrently and collects a
per-item outcome for each of them. Every order is validated against the
lifecycle engine before its request is sent, so an invalid item is reported
without ever reaching the network. Items are independent: one failure never
cancels or rolls back another item of the same batch.
"""

import asyncio

import structlog

from ordering.board.kanban import OrderBoard
from ordering.bulk.actions import MembershipAction, MoveOrderCard, StatusAction
from ordering.bulk.batch import BulkOperationBatch, ItemOutcome
from ordering.exceptions import ConflictError, NetworkError, NotFoundError, ValidationError
from ordering.gateway.port import MembershipKind, OrderService
from ordering.membership.dispatch import MembershipSync
from ordering.order.lifecycle import OrderLifecycleEngine
from ordering.order.order import Order, OrderStatus
from ordering.utils.logging import add_context

logger = structlog.get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 8

# Failures expected from a single item; anything else is logged as unexpected
ITEM_ERRORS = (ValidationError, NotFoundError, ConflictError, NetworkError)


class BulkOperationCoordinator:
    def __init__(
        self,
        engine: OrderLifecycleEngine,
        order_service: OrderService,
        board: OrderBoard | None = None,
        memberships: dict[MembershipKind, MembershipSync] | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        if max_concurrency < 1:
            raise ValidationError({"max_concurrency": ["Concurrency limit must be at least 1"]})
        self.engine = engine
        self.order_service = order_service
        self.board = board if board is not None else OrderBoard()
        self.memberships = memberships or {}
        self.max_concurrency = max_concurrency

    # -------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------
    async def apply(self, ids, action: StatusAction | MembershipAction) -> BulkOperationBatch:
        """Apply ``action`` to every id, at most ``max_concurrency`` at a time.

        Every item ends with an outcome, whatever it raised. A cancelled item
        is recorded as ``Cancelled``; only cancelling ``apply`` itself
        propagates.
        """
        batch = BulkOperationBatch(ids, action)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(entity_id: str) -> None:
            # Bound inside the item task only
            add_context(batch_id=batch.batch_id, entity_id=entity_id)
            try:
                async with semaphore:
                    await self._apply_one(entity_id, action)
            except asyncio.CancelledError:
                batch.record(ItemOutcome.failure(entity_id, "Cancelled"))
            except Exception as exc:
                if not isinstance(exc, ITEM_ERRORS):
                    logger.error(
                        "Unexpected bulk item failure",
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                batch.record(ItemOutcome.failure(entity_id, exc))
            else:
                batch.record(ItemOutcome.success(entity_id))

        await asyncio.gather(*(run(eid) for eid in batch.target_ids))

        self._log_batch(batch)
        return batch

    async def move_card(self, command: MoveOrderCard) -> BulkOperationBatch:
        """Drag-and-drop of one card: a bulk operation of size one."""
        return await self.apply([command.order_id], command.to_action())

    async def submit(self, ids, status, note: str | None = None) -> BulkOperationBatch:
        """Send a status change for many orders through the bulk endpoint.

        Items that fail local validation are reported without being sent.
        The remaining ids go out in a single request; when that request
        fails, every sent card goes back to its column and each sent id
        fails with the request's error.
        """
        action = StatusAction(status=status, note=note)
        batch = BulkOperationBatch(ids, action)

        moves = {}
        for order_id in batch.target_ids:
            try:
                order = await self._load(order_id)
                self.engine.update_status(order, action.status, note=note, shipment=action.shipment_for(order_id))
            except Exception as exc:
                batch.record(ItemOutcome.failure(order_id, exc))
            else:
                moves[order_id] = self.board.move(order_id, action.status)

        if moves:
            try:
                results = await self.order_service.bulk_update_status(list(moves), action.status.value)
            except asyncio.CancelledError:
                self._revert_all(moves)
                raise
            except Exception as exc:
                self._revert_all(moves)
                for order_id in moves:
                    batch.record(ItemOutcome.failure(order_id, exc))
            else:
                await self._merge_bulk_results(batch, moves, results)

        self._log_batch(batch)
        return batch

    # -------------------------------------------------------------------
    # Per-item operations
    # -------------------------------------------------------------------
    async def _apply_one(self, entity_id: str, action) -> None:
        if isinstance(action, StatusAction):
            await self._change_status(entity_id, action)
        else:
            await self._change_membership(entity_id, action)

    async def _load(self, order_id: str) -> Order:
        order = self.board.get(order_id)
        if order is None:
            order = await self.order_service.fetch_order(order_id)
            self.board.place(order)
        return order

    async def _change_status(self, order_id: str, action: StatusAction) -> None:
        order = await self._load(order_id)
        shipment = action.shipment_for(order_id)
        # Raises before any request when the move is not allowed
        self.engine.update_status(order, action.status, note=action.note, shipment=shipment)

        move = self.board.move(order_id, action.status)
        try:
            if action.status == OrderStatus.SHIPPED:
                updated = await self.order_service.ship_order(
                    order_id,
                    tracking_number=shipment.tracking_number,
                    carrier=shipment.carrier,
                    estimated_delivery=shipment.estimated_delivery,
                )
            elif action.status == OrderStatus.DELIVERED:
                updated = await self.order_service.deliver_order(order_id)
            else:
                updated = await self.order_service.update_status(order_id, action.status.value, action.note)
        except BaseException:
            self.board.revert(move)
            raise
        self.board.settle(updated)

    async def _change_membership(self, product_id: str, action: MembershipAction) -> None:
        sync = self.memberships.get(action.kind)
        if sync is None:
            raise ValidationError({"kind": [f"No membership sync for {action.kind.value}"]})
        if action.desired is None:
            await sync.toggle(product_id)
        else:
            await sync.set(product_id, action.desired)

    async def _merge_bulk_results(self, batch: BulkOperationBatch, moves: dict, results) -> None:
        reported = {}
        for result in results:
            if result.id in moves and result.id not in reported:
                reported[result.id] = result

        for order_id, move in moves.items():
            result = reported.get(order_id)
            if result is None:
                self.board.revert(move)
                batch.record(ItemOutcome.failure(order_id, "Missing from bulk response"))
            elif result.ok:
                await self._refresh_card(order_id, move)
                batch.record(ItemOutcome.success(order_id))
            else:
                self.board.revert(move)
                batch.record(
                    ItemOutcome(entity_id=order_id, ok=False, error=result.error, reason=result.reason or result.error)
                )

    def _revert_all(self, moves: dict) -> None:
        for move in moves.values():
            self.board.revert(move)

    async def _refresh_card(self, order_id: str, move) -> None:
        try:
            self.board.settle(await self.order_service.fetch_order(order_id))
        except Exception as exc:
            # The change went through; the card stays in its target column
            logger.warning("Order card refresh failed", order_id=order_id, target=move.target.value, error=str(exc))

    # -------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------
    def _log_batch(self, batch: BulkOperationBatch) -> None:
        action = batch.action
        target = action.status.value if isinstance(action, StatusAction) else action.kind.value
        log = logger.info if not batch.failed else logger.warning
        log(
            "Bulk operation finished",
            batch_id=batch.batch_id,
            target=target,
            summary=batch.summary(),
            status=batch.status.value,
            failed=batch.failed,
            duration=batch.duration,
        )

