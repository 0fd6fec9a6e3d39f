import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from promoplan.core.config import settings
from promoplan.core.database import init_db
from promoplan.routers import admin_coupons, coupons, subscriptions

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

OPENAPI_TAGS = [
    {"name": "Coupons", "description": "Validate and redeem promotional coupons."},
    {"name": "Subscriptions", "description": "Query the caller's plan and feature access."},
    {"name": "Admin Coupons", "description": "Create, update and analyse coupons."},
    {"name": "Admin Subscriptions", "description": "Inspect and transition subscriptions."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Promotional coupon validation and subscription lifecycle API. "
        "Validate and redeem coupons, query plan features, and manage "
        "coupons and subscriptions as an administrator."
    ),
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)

app.include_router(coupons.router, prefix="/v1/coupons", tags=["Coupons"])
app.include_router(subscriptions.router, prefix="/v1/subscriptions", tags=["Subscriptions"])
app.include_router(admin_coupons.router, prefix="/v1/admin/coupons", tags=["Admin Coupons"])
app.include_router(
    subscriptions.admin_router,
    prefix="/v1/admin/subscriptions",
    tags=["Admin Subscriptions"],
)


@app.get("/")
async def root() -> dict[str, str]:
    return {"app": settings.APP_NAME, "version": settings.version, "status": "running"}
