"""FastAPI routes for the marketplace stub: seller orders, cart and wishlist.

Every route delegates to the active marketplace adapter from
``get_marketplace()``, so the stub serves exactly the contract the HTTP
adapter consumes.
"""

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from ordering.api.schemas import (
    BulkItemResultSchema,
    BulkStatusRequest,
    BulkStatusResponse,
    OrderSchema,
    ShipOrderRequest,
    SnapshotResponse,
    StatusResponse,
    UpdateStatusRequest,
)
from ordering.exceptions import ConflictError, InvalidTransitionError, NetworkError, NotFoundError
from ordering.gateway import get_marketplace
from ordering.gateway.port import MembershipKind

# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("/bulk-status", status_code=207, response_model=BulkStatusResponse)
async def bulk_update_status(body: BulkStatusRequest) -> BulkStatusResponse:
    results = await get_marketplace().bulk_update_status(body.ids, body.status.value)
    return BulkStatusResponse(
        results=[BulkItemResultSchema(id=r.id, ok=r.ok, error=r.error, reason=r.reason) for r in results]
    )


@order_router.get("/{order_id}", response_model=OrderSchema, response_model_by_alias=True)
async def get_order(order_id: str) -> OrderSchema:
    order = await get_marketplace().fetch_order(order_id)
    return OrderSchema.from_order(order)


@order_router.patch("/{order_id}/status", response_model=OrderSchema, response_model_by_alias=True)
async def update_order_status(order_id: str, body: UpdateStatusRequest) -> OrderSchema:
    order = await get_marketplace().update_status(order_id, body.status.value, body.note)
    return OrderSchema.from_order(order)


@order_router.patch("/{order_id}/ship", response_model=OrderSchema, response_model_by_alias=True)
async def ship_order(order_id: str, body: ShipOrderRequest) -> OrderSchema:
    order = await get_marketplace().ship_order(
        order_id,
        tracking_number=body.tracking_number,
        carrier=body.carrier,
        estimated_delivery=body.estimated_delivery,
    )
    return OrderSchema.from_order(order)


@order_router.patch("/{order_id}/deliver", response_model=OrderSchema, response_model_by_alias=True)
async def deliver_order(order_id: str) -> OrderSchema:
    order = await get_marketplace().deliver_order(order_id)
    return OrderSchema.from_order(order)


# ---------------------------------------------------------------------------
# Membership Routers
# ---------------------------------------------------------------------------
def _membership_router(kind: MembershipKind) -> APIRouter:
    router = APIRouter(prefix=f"/{kind.value}", tags=[kind.value])

    @router.get("", response_model=SnapshotResponse)
    async def snapshot() -> SnapshotResponse:
        result = await get_marketplace().fetch_snapshot(kind)
        return SnapshotResponse(items=sorted(result.members), version=result.version)

    @router.post("/{product_id}", response_model=StatusResponse)
    async def add(product_id: str) -> StatusResponse:
        await get_marketplace().add_member(kind, product_id)
        return StatusResponse()

    @router.delete("/{product_id}", response_model=StatusResponse)
    async def remove(product_id: str) -> StatusResponse:
        await get_marketplace().remove_member(kind, product_id)
        return StatusResponse()

    return router


cart_router = _membership_router(MembershipKind.CART)
wishlist_router = _membership_router(MembershipKind.WISHLIST)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors onto the marketplace's HTTP status codes.

    Protean's handlers cover validation errors (400); the handlers added
    here take precedence for their more specific exception types.
    """
    register_exception_handlers(app)

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"error": "InvalidTransition", "from": exc.from_status, "to": exc.to_status},
        )

    @app.exception_handler(ConflictError)
    async def conflict(request: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"error": "Conflict", "detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "NotFound", "detail": str(exc)})

    @app.exception_handler(NetworkError)
    async def unavailable(request: Request, exc: NetworkError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"error": "Network", "detail": str(exc)})
