"""Tests for BulkOperationCoordinator against the fake marketplace."""

import asyncio

import pytest
import structlog
from ordering.board.kanban import OrderBoard
from ordering.bulk.actions import MembershipAction, MoveOrderCard, StatusAction
from ordering.bulk.batch import BatchStatus
from ordering.bulk.coordinator import BulkOperationCoordinator
from ordering.exceptions import NetworkError
from ordering.gateway.port import BulkItemResult, MembershipKind
from ordering.membership.dispatch import MembershipSync
from ordering.membership.sync import OptimisticSyncCoordinator
from ordering.order.order import OrderStatus, ShipmentDetails
from protean.exceptions import ValidationError


@pytest.fixture()
def board():
    return OrderBoard()


@pytest.fixture()
def coordinator(engine, marketplace, board):
    memberships = {
        kind: MembershipSync(kind, OptimisticSyncCoordinator(name=kind.value), marketplace) for kind in MembershipKind
    }
    return BulkOperationCoordinator(engine, marketplace, board=board, memberships=memberships)


def _ids(*orders):
    return [str(order.id) for order in orders]


class TestBulkStatus:
    @pytest.mark.asyncio
    async def test_partial_batch_reports_each_item(self, coordinator, marketplace, order_at):
        o1, o2, o3 = order_at("confirmed"), order_at("pending"), order_at("processing")
        marketplace.seed(o1, o2, o3)
        shipments = {
            str(o1.id): ShipmentDetails(tracking_number="T-1", carrier="UPS"),
            str(o3.id): ShipmentDetails(tracking_number="T-3", carrier="DHL"),
        }

        batch = await coordinator.apply(_ids(o1, o2, o3), StatusAction(status="shipped", shipments=shipments))

        assert batch.status == BatchStatus.PARTIAL
        assert batch.results() == [
            {"id": str(o1.id), "ok": True},
            {"id": str(o2.id), "ok": False, "error": "InvalidTransition"},
            {"id": str(o3.id), "ok": True},
        ]
        assert batch.summary() == "2 of 3 updated"
        assert marketplace.order(o1.id).tracking_number == "T-1"
        assert marketplace.order(o3.id).carrier == "DHL"
        assert marketplace.order(o2.id).status == "pending"

    @pytest.mark.asyncio
    async def test_invalid_items_never_reach_the_network(self, coordinator, marketplace, order_at):
        pending = order_at("pending")
        marketplace.seed(pending)

        await coordinator.apply(_ids(pending), StatusAction(status="delivered"))

        assert [c["method"] for c in marketplace.calls] == ["fetch_order"]

    @pytest.mark.asyncio
    async def test_ship_without_tracking_is_a_validation_failure(self, coordinator, marketplace, order_at):
        order = order_at("confirmed")
        marketplace.seed(order)

        batch = await coordinator.apply(_ids(order), StatusAction(status="shipped"))

        assert batch.outcome(str(order.id)).error == "Validation"
        assert "ship_order" not in [c["method"] for c in marketplace.calls]

    @pytest.mark.asyncio
    async def test_success_settles_the_board(self, coordinator, marketplace, board, order_at):
        order = order_at("pending")
        marketplace.seed(order)

        batch = await coordinator.apply(_ids(order), StatusAction(status="confirmed"))

        assert batch.status == BatchStatus.COMPLETE
        assert board.column_of(order.id) == OrderStatus.CONFIRMED
        assert board.get(order.id).status == "confirmed"

    @pytest.mark.asyncio
    async def test_network_failure_reverts_the_card(self, coordinator, marketplace, board, order_at):
        order = order_at("shipped")
        marketplace.seed(order)
        board.place(order)
        marketplace.fail_next(str(order.id), NetworkError("connection reset"))

        batch = await coordinator.apply(_ids(order), StatusAction(status="delivered"))

        assert batch.status == BatchStatus.FAILED
        assert batch.outcome(str(order.id)).error == "Network"
        assert board.column_of(order.id) == OrderStatus.SHIPPED
        assert marketplace.order(order.id).status == "shipped"

    @pytest.mark.asyncio
    async def test_unknown_order(self, coordinator):
        batch = await coordinator.apply(["missing"], StatusAction(status="confirmed"))
        assert batch.outcome("missing").error == "NotFound"

    @pytest.mark.asyncio
    async def test_deliver_uses_the_deliver_endpoint(self, coordinator, marketplace, order_at):
        order = order_at("out_for_delivery")
        marketplace.seed(order)

        await coordinator.apply(_ids(order), StatusAction(status="delivered"))

        assert marketplace.calls[-1]["method"] == "deliver_order"

    @pytest.mark.asyncio
    async def test_concurrency_is_capped(self, engine, marketplace, order_at):
        orders = [order_at("pending") for _ in range(6)]
        marketplace.seed(*orders)
        marketplace.latency = 0.01
        in_flight = 0
        peak = 0
        original = marketplace._call

        async def tracking_call(method, key, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await original(method, key, **kwargs)
            finally:
                in_flight -= 1

        marketplace._call = tracking_call
        coordinator = BulkOperationCoordinator(engine, marketplace, max_concurrency=2)

        batch = await coordinator.apply(_ids(*orders), StatusAction(status="confirmed"))

        assert batch.status == BatchStatus.COMPLETE
        assert peak == 2

    @pytest.mark.asyncio
    async def test_items_run_concurrently(self, coordinator, marketplace, order_at):
        slow, fast = order_at("pending"), order_at("pending")
        marketplace.seed(slow, fast)
        marketplace.delays[str(slow.id)] = 0.05
        finished = []
        original = marketplace.update_status

        async def recording_update(order_id, status, note=None):
            updated = await original(order_id, status, note)
            finished.append(order_id)
            return updated

        marketplace.update_status = recording_update

        await coordinator.apply(_ids(slow, fast), StatusAction(status="confirmed"))

        assert finished == _ids(fast, slow)

    def test_concurrency_must_be_positive(self, engine, marketplace):
        with pytest.raises(ValidationError):
            BulkOperationCoordinator(engine, marketplace, max_concurrency=0)


class TestItemIsolation:
    @pytest.mark.asyncio
    async def test_unexpected_and_cancelled_items_still_yield_a_batch(self, coordinator, marketplace, board, order_at):
        o1, o2, o3 = order_at("pending"), order_at("pending"), order_at("pending")
        marketplace.seed(o1, o2, o3)
        for order in (o1, o2, o3):
            board.place(order)
        marketplace.fail_next(str(o2.id), RuntimeError("403 Forbidden"))
        marketplace.fail_next(str(o3.id), asyncio.CancelledError())

        batch = await coordinator.apply(_ids(o1, o2, o3), StatusAction(status="confirmed"))

        assert batch.status == BatchStatus.PARTIAL
        assert batch.results() == [
            {"id": str(o1.id), "ok": True},
            {"id": str(o2.id), "ok": False, "error": "RuntimeError"},
            {"id": str(o3.id), "ok": False, "error": "Cancelled"},
        ]
        assert marketplace.order(o1.id).status == "confirmed"
        assert board.column_of(o1.id) == OrderStatus.CONFIRMED
        assert board.column_of(o2.id) == OrderStatus.PENDING
        assert board.column_of(o3.id) == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_cancelling_the_whole_batch_propagates(self, coordinator, marketplace, order_at):
        order = order_at("pending")
        marketplace.seed(order)
        marketplace.latency = 1

        task = asyncio.create_task(coordinator.apply(_ids(order), StatusAction(status="confirmed")))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_items_log_with_their_batch_id(self, coordinator, marketplace, order_at):
        order = order_at("pending")
        marketplace.seed(order)
        seen = []
        original = marketplace.update_status

        async def capturing_update(order_id, status, note=None):
            seen.append(structlog.contextvars.get_contextvars())
            return await original(order_id, status, note)

        marketplace.update_status = capturing_update

        batch = await coordinator.apply(_ids(order), StatusAction(status="confirmed"))

        assert seen == [{"batch_id": batch.batch_id, "entity_id": str(order.id)}]
        assert "batch_id" not in structlog.contextvars.get_contextvars()


class TestMoveCard:
    @pytest.mark.asyncio
    async def test_move_card_is_a_single_item_batch(self, coordinator, marketplace, board, order_at):
        order = order_at("processing")
        marketplace.seed(order)
        command = MoveOrderCard(
            order_id=str(order.id),
            target_status="shipped",
            tracking_number="1Z999",
            carrier="UPS",
        )

        batch = await coordinator.move_card(command)

        assert batch.target_ids == (str(order.id),)
        assert batch.status == BatchStatus.COMPLETE
        assert board.column_of(order.id) == OrderStatus.SHIPPED
        assert board.get(order.id).tracking_number == "1Z999"

    @pytest.mark.asyncio
    async def test_move_to_disallowed_column(self, coordinator, marketplace, board, order_at):
        order = order_at("pending")
        marketplace.seed(order)

        batch = await coordinator.move_card(MoveOrderCard(order_id=str(order.id), target_status="delivered"))

        assert batch.outcome(str(order.id)).error == "InvalidTransition"
        assert board.column_of(order.id) == OrderStatus.PENDING


class TestMembershipBatch:
    @pytest.mark.asyncio
    async def test_bulk_add_to_cart(self, coordinator, marketplace):
        marketplace.mark_out_of_stock("P2")

        batch = await coordinator.apply(["P1", "P2", "P3"], MembershipAction(kind=MembershipKind.CART, desired=True))

        assert batch.succeeded == ["P1", "P3"]
        assert batch.outcome("P2").error == "Conflict"
        cart = coordinator.memberships[MembershipKind.CART]
        assert cart.effective("P1") is True
        assert cart.effective("P2") is False
        assert marketplace.members(MembershipKind.CART) == frozenset({"P1", "P3"})

    @pytest.mark.asyncio
    async def test_bulk_toggle_wishlist(self, coordinator, marketplace):
        await marketplace.add_member(MembershipKind.WISHLIST, "P1")
        wishlist = coordinator.memberships[MembershipKind.WISHLIST]
        await wishlist.refresh()

        await coordinator.apply(["P1", "P2"], MembershipAction(kind=MembershipKind.WISHLIST))

        assert wishlist.effective("P1") is False
        assert wishlist.effective("P2") is True

    @pytest.mark.asyncio
    async def test_missing_membership_sync(self, engine, marketplace):
        coordinator = BulkOperationCoordinator(engine, marketplace)
        batch = await coordinator.apply(["P1"], MembershipAction(kind=MembershipKind.CART))
        assert batch.outcome("P1").error == "Validation"


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_sends_only_valid_ids(self, coordinator, marketplace, order_at):
        o1, o2, o3 = order_at("confirmed"), order_at("pending"), order_at("confirmed")
        marketplace.seed(o1, o2, o3)

        batch = await coordinator.submit(_ids(o1, o2, o3), "processing")

        bulk_call = [c for c in marketplace.calls if c["method"] == "bulk_update_status"][0]
        assert bulk_call["key"] == ",".join(_ids(o1, o3))
        assert batch.results() == [
            {"id": str(o1.id), "ok": True},
            {"id": str(o2.id), "ok": False, "error": "InvalidTransition"},
            {"id": str(o3.id), "ok": True},
        ]
        assert coordinator.board.get(o1.id).status == "processing"

    @pytest.mark.asyncio
    async def test_submit_network_failure_fails_every_sent_item(self, coordinator, marketplace, board, order_at):
        o1, o2 = order_at("confirmed"), order_at("confirmed")
        marketplace.seed(o1, o2)
        board.place(o1)
        board.place(o2)

        async def unavailable(order_ids, status):
            raise NetworkError("503")

        marketplace.bulk_update_status = unavailable

        batch = await coordinator.submit(_ids(o1, o2), "processing")

        assert batch.status == BatchStatus.FAILED
        assert board.column_of(o1.id) == OrderStatus.CONFIRMED
        assert board.column_of(o2.id) == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_submit_merges_server_side_rejections(self, coordinator, marketplace, board, order_at):
        o1, o2 = order_at("confirmed"), order_at("confirmed")
        marketplace.seed(o1, o2)

        async def half_rejected(order_ids, status):
            return [
                BulkItemResult(id=order_ids[0], ok=True),
                BulkItemResult(id=order_ids[1], ok=False, error="Conflict", reason="Order locked"),
            ]

        marketplace.bulk_update_status = half_rejected

        batch = await coordinator.submit(_ids(o1, o2), "processing")

        assert batch.status == BatchStatus.PARTIAL
        assert batch.outcome(str(o2.id)).reason == "Order locked"
        assert board.column_of(o2.id) == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_submit_missing_result_is_a_failure(self, coordinator, marketplace, order_at):
        order = order_at("pending")
        marketplace.seed(order)

        async def empty(order_ids, status):
            return []

        marketplace.bulk_update_status = empty

        batch = await coordinator.submit(_ids(order), "confirmed")

        assert batch.outcome(str(order.id)).ok is False

    @pytest.mark.asyncio
    async def test_rejected_bulk_request_reverts_every_sent_card(self, coordinator, marketplace, board, order_at):
        o1, o2 = order_at("pending"), order_at("pending")
        marketplace.seed(o1, o2)
        board.place(o1)
        board.place(o2)

        async def rejected(order_ids, status):
            raise ValidationError({"request": ["Unprocessable bulk request"]})

        marketplace.bulk_update_status = rejected

        batch = await coordinator.submit(_ids(o1, o2), "confirmed")

        assert batch.status == BatchStatus.FAILED
        assert [batch.outcome(oid).error for oid in _ids(o1, o2)] == ["Validation", "Validation"]
        assert board.column_of(o1.id) == OrderStatus.PENDING
        assert board.column_of(o2.id) == OrderStatus.PENDING
        assert marketplace.order(o1.id).status == "pending"
