"""Optimistic membership sync: local intents reconciled against server snapshots.

Cart and wishlist membership is toggled locally first and confirmed later by
the authoritative snapshot the client polls. The coordinator keeps at most
one live intent per entity id, tagged with a token that increases with every
toggle, so a late response to an old request can never undo a newer one.

Reconciliation rules:
    - a snapshot that agrees with a live intent clears it (confirmed)
    - a snapshot that disagrees ages it; after ``staleness_window``
      disagreeing snapshots the intent is dropped (expired)
    - a request failure drops the intent it was issued for, unless a newer
      intent has replaced it in the meantime
"""

import itertools
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError

logger = structlog.get_logger(__name__)

DEFAULT_STALENESS_WINDOW = 3


@dataclass(frozen=True)
class MembershipIntent:
    """A locally held desired membership value awaiting server confirmation."""

    entity_id: str
    desired: bool
    token: int
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class ServerSnapshot:
    """Authoritative membership as last reported by the server."""

    members: frozenset = frozenset()
    version: int = 0
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def of(cls, members, version: int = 0) -> "ServerSnapshot":
        return cls(members=frozenset(str(m) for m in members), version=version)

    def has(self, entity_id) -> bool:
        return str(entity_id) in self.members

    def __contains__(self, entity_id):
        return self.has(entity_id)


@dataclass(frozen=True)
class Reconciliation:
    """What a snapshot ingestion did to the live intents."""

    confirmed: tuple = ()
    expired: tuple = ()
    pending: tuple = ()
    ignored: bool = False


class OptimisticSyncCoordinator:
    def __init__(self, staleness_window: int = DEFAULT_STALENESS_WINDOW, name: str = "membership"):
        if staleness_window < 1:
            raise ValidationError({"staleness_window": ["Staleness window must be at least one snapshot"]})
        self.staleness_window = staleness_window
        self.name = name
        self._snapshot = ServerSnapshot()
        self._intents: dict[str, MembershipIntent] = {}
        self._ages: dict[str, int] = {}
        self._tokens = itertools.count(1)
        self._older_seen = 0

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def snapshot(self) -> ServerSnapshot:
        return self._snapshot

    @property
    def intents(self) -> dict[str, MembershipIntent]:
        return dict(self._intents)

    def live_intent(self, entity_id) -> MembershipIntent | None:
        return self._intents.get(str(entity_id))

    def effective(self, entity_id) -> bool:
        """The membership value the UI should show for ``entity_id``."""
        intent = self._intents.get(str(entity_id))
        if intent is not None:
            return intent.desired
        return self._snapshot.has(entity_id)

    def members(self) -> frozenset:
        """Every entity id that is effectively a member right now."""
        added = {eid for eid, intent in self._intents.items() if intent.desired}
        removed = {eid for eid, intent in self._intents.items() if not intent.desired}
        return frozenset((self._snapshot.members | added) - removed)

    # -------------------------------------------------------------------
    # Local mutations
    # -------------------------------------------------------------------
    def toggle(self, entity_id) -> MembershipIntent:
        """Flip the effective value of ``entity_id`` and return the new live intent."""
        return self.set(entity_id, not self.effective(entity_id))

    def set(self, entity_id, desired: bool) -> MembershipIntent:
        """Record ``desired`` as the live intent for ``entity_id``.

        The returned intent carries a token strictly greater than any issued
        before; the caller tags its network request with it.
        """
        entity_id = str(entity_id)
        intent = MembershipIntent(entity_id=entity_id, desired=bool(desired), token=next(self._tokens))
        self._intents[entity_id] = intent
        self._ages[entity_id] = 0
        logger.debug(
            "Membership intent recorded",
            coordinator=self.name,
            entity_id=entity_id,
            desired=intent.desired,
            token=intent.token,
        )
        return intent

    def _is_live(self, entity_id: str, token: int) -> bool:
        intent = self._intents.get(entity_id)
        return intent is not None and intent.token == token

    def resolve_success(self, entity_id, token: int) -> bool:
        """Acknowledge a successful request.

        The intent stays in place until a snapshot confirms it. Returns False
        when ``token`` has been superseded.
        """
        entity_id = str(entity_id)
        if not self._is_live(entity_id, token):
            logger.debug("Ignoring stale success", coordinator=self.name, entity_id=entity_id, token=token)
            return False
        return True

    def resolve_failure(self, entity_id, token: int) -> bool:
        """Drop the intent a failed request was issued for.

        ``effective()`` falls back to the last snapshot. Failures of
        superseded requests are ignored; returns whether anything was dropped.
        """
        entity_id = str(entity_id)
        if not self._is_live(entity_id, token):
            logger.debug("Ignoring stale failure", coordinator=self.name, entity_id=entity_id, token=token)
            return False
        self._drop(entity_id)
        logger.info(
            "Membership intent rolled back",
            coordinator=self.name,
            entity_id=entity_id,
            token=token,
            effective=self.effective(entity_id),
        )
        return True

    # -------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------
    def ingest_snapshot(self, snapshot: ServerSnapshot) -> Reconciliation:
        """Replace the server snapshot and reconcile every live intent against it.

        A snapshot older than the current one is ignored. Once more than
        ``staleness_window`` older snapshots arrive in a row, the server's
        version counter is taken to have reset and the snapshot is accepted.
        """
        if snapshot.version < self._snapshot.version:
            self._older_seen += 1
            if self._older_seen <= self.staleness_window:
                logger.info(
                    "Ignoring out-of-date snapshot",
                    coordinator=self.name,
                    version=snapshot.version,
                    current_version=self._snapshot.version,
                )
                return Reconciliation(pending=tuple(self._intents), ignored=True)
            logger.warning(
                "Snapshot version reset",
                coordinator=self.name,
                version=snapshot.version,
                previous_version=self._snapshot.version,
            )

        self._older_seen = 0
        self._snapshot = snapshot
        confirmed, expired, pending = [], [], []

        for entity_id, intent in list(self._intents.items()):
            if snapshot.has(entity_id) == intent.desired:
                self._drop(entity_id)
                confirmed.append(entity_id)
                continue

            self._ages[entity_id] += 1
            if self._ages[entity_id] > self.staleness_window:
                self._drop(entity_id)
                expired.append(entity_id)
                logger.warning(
                    "Discarding unconfirmed membership intent",
                    coordinator=self.name,
                    entity_id=entity_id,
                    desired=intent.desired,
                    token=intent.token,
                    snapshots_seen=self.staleness_window + 1,
                )
            else:
                pending.append(entity_id)

        return Reconciliation(confirmed=tuple(confirmed), expired=tuple(expired), pending=tuple(pending))

    def clear(self) -> None:
        """Forget every intent and the snapshot (session teardown)."""
        self._intents.clear()
        self._ages.clear()
        self._snapshot = ServerSnapshot()
        self._older_seen = 0

    def _drop(self, entity_id: str) -> None:
        self._intents.pop(entity_id, None)
        self._ages.pop(entity_id, None)
