"""Membership dispatch: the optimistic toggle round trip for one cart or wishlist.

``MembershipSync`` records the intent locally, sends the add/remove request
tagged with the intent's token, and resolves the intent with the outcome.
Any failed or cancelled request rolls the local value back to the last
snapshot and re-raises. A successful one leaves the intent for the next
snapshot to confirm.
"""

import structlog

from ordering.gateway.port import MembershipKind, MembershipService
from ordering.membership.sync import MembershipIntent, OptimisticSyncCoordinator, Reconciliation

logger = structlog.get_logger(__name__)


class MembershipSync:
    def __init__(
        self,
        kind: MembershipKind,
        coordinator: OptimisticSyncCoordinator,
        service: MembershipService,
    ) -> None:
        self.kind = kind
        self.coordinator = coordinator
        self.service = service

    def effective(self, product_id) -> bool:
        return self.coordinator.effective(product_id)

    async def toggle(self, product_id) -> MembershipIntent:
        """Flip the product's membership and send the matching request."""
        intent = self.coordinator.toggle(product_id)
        await self._dispatch(intent)
        return intent

    async def set(self, product_id, desired: bool) -> MembershipIntent | None:
        """Make the product a member (or not). No request when it already is."""
        if self.coordinator.effective(product_id) == desired:
            return None
        intent = self.coordinator.set(product_id, desired)
        await self._dispatch(intent)
        return intent

    async def refresh(self) -> Reconciliation:
        """Fetch the authoritative snapshot and reconcile against it."""
        snapshot = await self.service.fetch_snapshot(self.kind)
        reconciliation = self.coordinator.ingest_snapshot(snapshot)
        if reconciliation.confirmed or reconciliation.expired:
            logger.info(
                "Membership snapshot reconciled",
                kind=self.kind.value,
                version=snapshot.version,
                confirmed=list(reconciliation.confirmed),
                expired=list(reconciliation.expired),
                pending=list(reconciliation.pending),
            )
        return reconciliation

    async def _dispatch(self, intent: MembershipIntent) -> None:
        try:
            if intent.desired:
                await self.service.add_member(self.kind, intent.entity_id)
            else:
                await self.service.remove_member(self.kind, intent.entity_id)
        except BaseException as exc:
            self.coordinator.resolve_failure(intent.entity_id, intent.token)
            logger.warning(
                "Membership change failed",
                kind=self.kind.value,
                product_id=intent.entity_id,
                desired=intent.desired,
                token=intent.token,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        self.coordinator.resolve_success(intent.entity_id, intent.token)
