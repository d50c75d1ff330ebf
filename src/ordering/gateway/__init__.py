"""Marketplace gateway factory.

Provides get_marketplace() / set_marketplace() to swap implementations:
- FakeMarketplace for development, tests and the stub API (default)
- HttpMarketplace for a real marketplace API (MARKETPLACE_ADAPTER=http)
"""

from ordering.config import SyncSettings
from ordering.gateway.fake_adapter import FakeMarketplace
from ordering.gateway.http_adapter import HttpMarketplace
from ordering.order.lifecycle import OrderLifecycleEngine

_current_marketplace: FakeMarketplace | HttpMarketplace | None = None


def build_marketplace(settings: SyncSettings | None = None) -> FakeMarketplace | HttpMarketplace:
    """Create a new marketplace adapter for the configured backend."""
    settings = settings or SyncSettings.from_env()
    if settings.adapter == "fake":
        return FakeMarketplace(OrderLifecycleEngine(settings.cancellation_policy()))
    if settings.adapter == "http":
        return HttpMarketplace(settings.api_url, timeout=settings.timeout)
    raise ValueError(f"Unknown marketplace adapter: {settings.adapter}")


def get_marketplace(settings: SyncSettings | None = None) -> FakeMarketplace | HttpMarketplace:
    """Return the configured marketplace adapter (singleton)."""
    global _current_marketplace
    if _current_marketplace is None:
        _current_marketplace = build_marketplace(settings)
    return _current_marketplace


def set_marketplace(marketplace: FakeMarketplace | HttpMarketplace) -> None:
    """Override the active marketplace adapter (useful for tests)."""
    global _current_marketplace
    _current_marketplace = marketplace


def reset_marketplace() -> None:
    """Reset the marketplace singleton."""
    global _current_marketplace
    _current_marketplace = None
