"""Bulk operation batch: per-item outcomes of one action applied to many ids.

A batch is opened with its target ids, collects one outcome per id as each
operation resolves, and is sealed once every id has an outcome. A partially
failed batch is a normal result, not an exception: callers read
``succeeded`` / ``failed`` and ``summary()`` ("3 of 5 updated").
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError

from ordering.exceptions import error_code


class BatchStatus(Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemOutcome:
    entity_id: str
    ok: bool
    error: str | None = None
    reason: str | None = None

    @classmethod
    def success(cls, entity_id) -> "ItemOutcome":
        return cls(entity_id=str(entity_id), ok=True)

    @classmethod
    def failure(cls, entity_id, exc: Exception | str) -> "ItemOutcome":
        if isinstance(exc, str):
            return cls(entity_id=str(entity_id), ok=False, error=exc, reason=exc)
        return cls(entity_id=str(entity_id), ok=False, error=error_code(exc), reason=str(exc))

    def to_dict(self) -> dict:
        result = {"id": self.entity_id, "ok": self.ok}
        if not self.ok:
            result["error"] = self.error
        return result


class BulkOperationBatch:
    def __init__(self, target_ids, action, batch_id: str | None = None) -> None:
        # Duplicates collapse onto their first occurrence
        targets = tuple(dict.fromkeys(str(entity_id) for entity_id in target_ids))
        if not targets:
            raise ValidationError({"ids": ["A bulk operation needs at least one id"]})
        self.batch_id = batch_id or f"batch-{uuid4().hex[:12]}"
        self.target_ids = targets
        self.action = action
        self._outcomes: dict[str, ItemOutcome] = {}
        self.started_at = datetime.now(timezone.utc)
        self.completed_at: datetime | None = None

    def __repr__(self):
        return f"<BulkOperationBatch {self.batch_id} {self.status.value} {self.summary()!r}>"

    # -------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------
    def record(self, outcome: ItemOutcome) -> None:
        if self.is_resolved:
            raise ValidationError({"batch": [f"Batch {self.batch_id} is already resolved"]})
        if outcome.entity_id not in self.target_ids:
            raise ValidationError({"ids": [f"{outcome.entity_id} is not a target of batch {self.batch_id}"]})
        if outcome.entity_id in self._outcomes:
            raise ValidationError({"ids": [f"{outcome.entity_id} already has an outcome"]})
        self._outcomes[outcome.entity_id] = outcome
        if self.is_resolved:
            self.completed_at = datetime.now(timezone.utc)

    # -------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------
    @property
    def is_resolved(self) -> bool:
        return len(self._outcomes) == len(self.target_ids)

    @property
    def duration(self) -> float | None:
        """Seconds from opening the batch to its last outcome; None while pending."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def outcomes(self) -> dict[str, ItemOutcome]:
        return dict(self._outcomes)

    def outcome(self, entity_id) -> ItemOutcome | None:
        return self._outcomes.get(str(entity_id))

    @property
    def succeeded(self) -> list[str]:
        return [eid for eid in self.target_ids if eid in self._outcomes and self._outcomes[eid].ok]

    @property
    def failed(self) -> list[str]:
        return [eid for eid in self.target_ids if eid in self._outcomes and not self._outcomes[eid].ok]

    @property
    def status(self) -> BatchStatus:
        if not self.is_resolved:
            return BatchStatus.PENDING
        if not self.failed:
            return BatchStatus.COMPLETE
        if self.succeeded:
            return BatchStatus.PARTIAL
        return BatchStatus.FAILED

    def results(self) -> list[dict]:
        """Outcomes in target order, shaped like the bulk-status endpoint's results."""
        return [self._outcomes[eid].to_dict() for eid in self.target_ids if eid in self._outcomes]

    def summary(self) -> str:
        return f"{len(self.succeeded)} of {len(self.target_ids)} updated"
