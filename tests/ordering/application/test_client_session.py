"""Tests for the snapshot poller and the client session wiring."""

import asyncio

import pytest
from ordering.bulk.actions import StatusAction
from ordering.config import SyncSettings
from ordering.gateway.port import MembershipKind
from ordering.membership.dispatch import MembershipSync
from ordering.membership.poller import SnapshotPoller
from ordering.membership.sync import OptimisticSyncCoordinator
from ordering.session import ClientSession


@pytest.fixture()
def settings():
    return SyncSettings(snapshot_poll_interval=0.01, staleness_window=2, bulk_max_concurrency=3)


class TestSnapshotPoller:
    @pytest.mark.asyncio
    async def test_poll_once_refreshes_every_sync(self, marketplace):
        await marketplace.add_member(MembershipKind.CART, "P1")
        await marketplace.add_member(MembershipKind.WISHLIST, "P2")
        cart = MembershipSync(MembershipKind.CART, OptimisticSyncCoordinator(), marketplace)
        wishlist = MembershipSync(MembershipKind.WISHLIST, OptimisticSyncCoordinator(), marketplace)

        await SnapshotPoller([cart, wishlist]).poll_once()

        assert cart.effective("P1") is True
        assert wishlist.effective("P2") is True
        assert cart.effective("P2") is False

    @pytest.mark.asyncio
    async def test_failed_poll_keeps_intents(self, marketplace):
        cart = MembershipSync(MembershipKind.CART, OptimisticSyncCoordinator(), marketplace)
        await cart.toggle("P1")
        marketplace.configure(should_succeed=False)

        await SnapshotPoller([cart]).poll_once()

        assert cart.coordinator.live_intent("P1") is not None

    @pytest.mark.asyncio
    async def test_background_polling(self, marketplace):
        cart = MembershipSync(MembershipKind.CART, OptimisticSyncCoordinator(), marketplace)
        poller = SnapshotPoller([cart], interval=0.01)

        poller.start()
        assert poller.running
        await marketplace.add_member(MembershipKind.CART, "P1")
        await asyncio.sleep(0.05)
        await poller.stop()

        assert not poller.running
        assert cart.coordinator.snapshot.has("P1")

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await SnapshotPoller([]).stop()


class TestClientSession:
    @pytest.mark.asyncio
    async def test_session_wires_settings(self, settings, marketplace):
        session = ClientSession(settings, order_service=marketplace, membership_service=marketplace)

        assert session.cart.coordinator.staleness_window == 2
        assert session.bulk.max_concurrency == 3
        assert session.poller.interval == 0.01
        assert session.membership(MembershipKind.WISHLIST) is session.wishlist

    @pytest.mark.asyncio
    async def test_start_loads_snapshots_and_close_clears_state(self, settings, marketplace, order_at):
        await marketplace.add_member(MembershipKind.WISHLIST, "P1")
        order = order_at("pending")
        marketplace.seed(order)

        async with ClientSession(settings, order_service=marketplace, membership_service=marketplace) as session:
            assert session.poller.running
            assert session.wishlist.effective("P1") is True
            await session.cart.toggle("P2")
            await session.bulk.apply([str(order.id)], StatusAction(status="confirmed"))
            assert len(session.board) == 1

        assert session.closed
        assert not session.poller.running
        assert session.cart.coordinator.intents == {}
        assert len(session.board) == 0

    @pytest.mark.asyncio
    async def test_session_builds_its_own_marketplace(self, settings):
        session = ClientSession(settings)
        await session.start()
        await session.close()
        assert session.order_service is session.membership_service

    @pytest.mark.asyncio
    async def test_start_survives_unreachable_marketplace(self, settings, marketplace):
        marketplace.configure(should_succeed=False)
        session = ClientSession(settings, order_service=marketplace, membership_service=marketplace)

        await session.start()
        await session.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, settings, marketplace):
        session = ClientSession(settings, order_service=marketplace, membership_service=marketplace)
        await session.close()
        await session.close()
