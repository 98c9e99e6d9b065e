import logging

from fastapi import Depends, FastAPI, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from luxepass.api.admin import router as admin_router
from luxepass.api.payments import router as payments_router
from luxepass.api.webhooks import router as webhooks_router
from luxepass.core.config import settings
from luxepass.db.deps import get_db
from luxepass.middleware.correlation_id import CorrelationIdMiddleware
from luxepass.middleware.rate_limit import RateLimitMiddleware

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LuxePass WhatsApp Concierge")

# Rate limit the agent dashboard only; Meta and Paystack retry on 429
app.add_middleware(RateLimitMiddleware, rate_limited_paths=["/admin"])
app.add_middleware(CorrelationIdMiddleware)

REQUIRED_SETTINGS = (
    "database_url",
    "whatsapp_verify_token",
    "whatsapp_access_token",
    "whatsapp_phone_number_id",
    "paystack_secret_key",
)


def _production_problems() -> list[str]:
    problems = []
    if not settings.admin_api_key:
        problems.append(
            "ADMIN_API_KEY is required in production (the agent dashboard would be open)."
        )
    if not settings.whatsapp_app_secret:
        problems.append(
            "WHATSAPP_APP_SECRET is required in production to check X-Hub-Signature-256 "
            "on WhatsApp webhooks."
        )
    if settings.paystack_secret_key.startswith("sk_test_"):
        problems.append("PAYSTACK_SECRET_KEY is a test key; use the live secret key in production.")
    return problems


def validate_settings() -> None:
    """
    Fail fast on missing or insecure configuration.

    Raises:
        RuntimeError: listing every problem found
    """
    missing = [name.upper() for name in REQUIRED_SETTINGS if not getattr(settings, name, None)]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    if not 0 < settings.concierge_min_amount <= settings.concierge_max_amount:
        raise RuntimeError(
            "CONCIERGE_MIN_AMOUNT must be positive and not greater than CONCIERGE_MAX_AMOUNT "
            f"(got {settings.concierge_min_amount} and {settings.concierge_max_amount})."
        )

    if settings.app_env != "production":
        return

    problems = _production_problems()
    if problems:
        message = "Refusing to start in production:\n" + "\n".join(f"  - {p}" for p in problems)
        logger.error(message)
        raise RuntimeError(message)


@app.on_event("startup")
async def startup_event():
    from luxepass.services.catalog import get_catalog

    validate_settings()

    catalog = get_catalog()
    logger.info(
        f"LuxePass starting: env={settings.app_env} "
        f"whatsapp_dry_run={settings.whatsapp_dry_run} "
        f"catalog_categories={len(catalog.categories)} "
        f"concierge_range={settings.concierge_min_amount}-{settings.concierge_max_amount}"
    )


@app.get("/health")
def health():
    """Liveness: answers without touching the database."""
    return {
        "ok": True,
        "environment": settings.app_env,
        "whatsapp_dry_run": settings.whatsapp_dry_run,
    }


@app.get("/ready")
def ready(db: Session = Depends(get_db)):
    """Readiness: 503 until the database answers SELECT 1."""
    try:
        db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Readiness check failed, database unreachable: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "database": "disconnected", "error": str(e)},
        )
    return {"ok": True, "database": "connected"}


app.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
app.include_router(payments_router, prefix="/payments", tags=["payments"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])
