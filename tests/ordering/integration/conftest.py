import pytest
from fastapi import FastAPI, Request
from ordering.api.routes import cart_router, order_router, register_error_handlers, wishlist_router
from ordering.domain import ordering


@pytest.fixture()
def api_app(marketplace) -> FastAPI:
    """The stub API wired to the test's fake marketplace."""
    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with ordering.domain_context():
            return await call_next(request)

    app.include_router(order_router)
    app.include_router(cart_router)
    app.include_router(wishlist_router)
    register_error_handlers(app)
    return app
