import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# IMPORTANT:
# This imports ALL models so SQLAlchemy registers tables + FKs correctly
import app.models  # noqa: F401

from app.core.config import settings
from app.core.logging_config import configure_logging
from app.services.scheduler import expiring_offers_scheduler

# Routers
from app.routers.coupons import router as coupons_router
from app.routers.admin_coupons import router as admin_coupons_router

from app.routers.offers import router as offers_router
from app.routers.partner_offers import router as partner_offers_router
from app.routers.saved_offers import router as saved_offers_router

from app.routers.notifications import router as notifications_router
from app.routers.scheduler import router as scheduler_router

configure_logging()
logger = logging.getLogger(__name__)


app = FastAPI(title="Offers Marketplace API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Coupons
app.include_router(coupons_router)
app.include_router(admin_coupons_router)

# Offers
app.include_router(offers_router)
app.include_router(partner_offers_router)
app.include_router(saved_offers_router)

# Notifications & background jobs
app.include_router(notifications_router)
app.include_router(scheduler_router)


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    if settings.SCHEDULER_ENABLED:
        expiring_offers_scheduler.start()
    else:
        logger.info("Expiring offers scheduler disabled")


@app.on_event("shutdown")
async def shutdown_event():
    expiring_offers_scheduler.stop()


@app.get("/health")
async def health():
    return {"status": "ok"}
