"""Ordering bounded context: order fulfillment lifecycle and client sync.

Handles the seller-side order lifecycle (a pure transition engine over the
Order aggregate), optimistic cart/wishlist membership, and bulk operations
that fan one action out over many orders or products.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
