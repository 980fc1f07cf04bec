from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.deps.access import session_registry
from storefront.core.config import settings
from storefront.core.logging import configure_logging
from storefront.db.session import engine
import storefront.models  # noqa: F401  # force model registration

from storefront.api.v1.auth import router as auth_router
from storefront.api.v1.access import router as access_router
from storefront.api.v1.admin import router as admin_router
from storefront.api.v1.staff import router as staff_router
from storefront.api.v1.products import router as products_router
from storefront.api.v1.categories import router as categories_router
from storefront.api.v1.cart import router as cart_router
from storefront.api.v1.orders import router as orders_router
from storefront.api.v1.orders import admin_router as admin_orders_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # Pending role resolutions must not outlive the event loop.
    session_registry.close_all()
    await engine.dispose()


def create_application() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Storefront API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {"status": "ok", "service": "storefront"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(access_router, prefix="/api/v1")
    app.include_router(products_router, prefix="/api/v1")
    app.include_router(categories_router, prefix="/api/v1")
    app.include_router(cart_router, prefix="/api/v1")
    app.include_router(orders_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")
    app.include_router(admin_orders_router, prefix="/api/v1")
    app.include_router(staff_router, prefix="/api/v1")

    return app


app = create_application()
