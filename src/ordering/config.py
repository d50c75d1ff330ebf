"""Runtime settings for the marketplace client, read from the environment.

| variable                   | default                        |
|----------------------------|--------------------------------|
| MARKETPLACE_ADAPTER        | fake                           |
| MARKETPLACE_API_URL        | http://localhost:8000          |
| MARKETPLACE_TIMEOUT        | 10.0                           |
| SNAPSHOT_POLL_INTERVAL     | 60.0                           |
| STALENESS_WINDOW           | 3                              |
| BULK_MAX_CONCURRENCY       | 8                              |
| ORDER_CANCELLABLE_STATES   | pending,confirmed,processing   |
"""

import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, Field

from ordering.order.lifecycle import CancellationPolicy

_ENV_VARS = {
    "adapter": "MARKETPLACE_ADAPTER",
    "api_url": "MARKETPLACE_API_URL",
    "timeout": "MARKETPLACE_TIMEOUT",
    "snapshot_poll_interval": "SNAPSHOT_POLL_INTERVAL",
    "staleness_window": "STALENESS_WINDOW",
    "bulk_max_concurrency": "BULK_MAX_CONCURRENCY",
    "cancellable_states": "ORDER_CANCELLABLE_STATES",
}


class SyncSettings(BaseModel):
    adapter: Literal["fake", "http"] = "fake"
    api_url: str = "http://localhost:8000"
    timeout: float = Field(default=10.0, gt=0)
    snapshot_poll_interval: float = Field(default=60.0, gt=0)
    staleness_window: int = Field(default=3, ge=1)
    bulk_max_concurrency: int = Field(default=8, ge=1)
    cancellable_states: str = "pending,confirmed,processing"

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SyncSettings":
        """Build settings from environment variables, falling back to defaults."""
        environ = os.environ if environ is None else environ
        values = {field: environ[var] for field, var in _ENV_VARS.items() if environ.get(var)}
        return cls.model_validate(values)

    def cancellation_policy(self) -> CancellationPolicy:
        return CancellationPolicy.from_names(self.cancellable_states)
