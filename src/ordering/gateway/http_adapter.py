"""HTTP marketplace adapter: talks to the marketplace REST API with httpx.

Maps the HTTP contract back onto the error taxonomy:

    404            → NotFoundError
    409            → InvalidTransitionError when the body says so,
                     ConflictError otherwise
    other 4xx      → ValidationError
    5xx, other non-2xx, transport → NetworkError
"""

import httpx
import structlog

from ordering.api.schemas import (
    BulkStatusResponse,
    OrderSchema,
    SnapshotResponse,
)
from ordering.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NetworkError,
    NotFoundError,
    ValidationError,
)
from ordering.gateway.port import BulkItemResult, MembershipKind, MembershipService, OrderService
from ordering.membership.sync import ServerSnapshot
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


class HttpMarketplace(OrderService, MembershipService):
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, entity_id: str, json: dict | None = None) -> httpx.Response:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TransportError as exc:
            logger.warning("Marketplace request failed", method=method, path=path, error=str(exc))
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 404:
            kind = "Order" if path.startswith("/orders") else "Product"
            raise NotFoundError(entity_id, kind=kind)
        if response.status_code == 409:
            body = _json_body(response)
            if body.get("error") == "InvalidTransition":
                raise InvalidTransitionError(body.get("from"), body.get("to"))
            raise ConflictError(body.get("detail") or "Conflict")
        if 400 <= response.status_code < 500:
            body = _json_body(response)
            detail = body.get("detail") or body or response.text or f"HTTP {response.status_code}"
            raise ValidationError({"request": [str(detail)]})
        if not response.is_success:
            logger.warning("Unexpected marketplace response", method=method, path=path, status_code=response.status_code)
            raise NetworkError(f"{method} {path} returned {response.status_code}")
        return response

    # -------------------------------------------------------------------
    # OrderService
    # -------------------------------------------------------------------
    async def fetch_order(self, order_id: str) -> Order:
        response = await self._request("GET", f"/orders/{order_id}", order_id)
        return OrderSchema.model_validate(response.json()).to_order()

    async def update_status(self, order_id: str, status: str, note: str | None = None) -> Order:
        payload = {"status": getattr(status, "value", status)}
        if note:
            payload["note"] = note
        response = await self._request("PATCH", f"/orders/{order_id}/status", order_id, json=payload)
        return OrderSchema.model_validate(response.json()).to_order()

    async def ship_order(
        self,
        order_id: str,
        tracking_number: str,
        carrier: str,
        estimated_delivery: str | None = None,
    ) -> Order:
        payload = {"trackingNumber": tracking_number, "carrier": carrier}
        if estimated_delivery:
            payload["estimatedDelivery"] = estimated_delivery
        response = await self._request("PATCH", f"/orders/{order_id}/ship", order_id, json=payload)
        return OrderSchema.model_validate(response.json()).to_order()

    async def deliver_order(self, order_id: str) -> Order:
        response = await self._request("PATCH", f"/orders/{order_id}/deliver", order_id)
        return OrderSchema.model_validate(response.json()).to_order()

    async def bulk_update_status(self, order_ids: list[str], status: str) -> list[BulkItemResult]:
        payload = {"ids": list(order_ids), "status": getattr(status, "value", status)}
        response = await self._request("POST", "/orders/bulk-status", ",".join(order_ids), json=payload)
        body = BulkStatusResponse.model_validate(response.json())
        return [BulkItemResult(id=r.id, ok=r.ok, error=r.error, reason=r.reason) for r in body.results]

    # -------------------------------------------------------------------
    # MembershipService
    # -------------------------------------------------------------------
    async def add_member(self, kind: MembershipKind, product_id: str) -> None:
        await self._request("POST", f"/{kind.value}/{product_id}", product_id)

    async def remove_member(self, kind: MembershipKind, product_id: str) -> None:
        await self._request("DELETE", f"/{kind.value}/{product_id}", product_id)

    async def fetch_snapshot(self, kind: MembershipKind) -> ServerSnapshot:
        response = await self._request("GET", f"/{kind.value}", kind.value)
        body = SnapshotResponse.model_validate(response.json())
        return ServerSnapshot.of(body.items, version=body.version)


def _json_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
