"""cardswap: FastAPI Application Entry Point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from cardswap import models  # noqa: F401  (registers tables on Base.metadata)
from cardswap.config import settings
from cardswap.database import engine, Base
from cardswap.errors import register_error_handlers
from cardswap.middleware.rate_limit import limiter
from cardswap.routers import parental, trades

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ── CORS origins from env ───────────────────────────────────────────────────
_cors_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]

app = FastAPI(
    title="cardswap",
    description="Trading-card marketplace: trades, valuation and parental controls.",
    version="0.1.0",
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

register_error_handlers(app)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(trades.router)
app.include_router(parental.router)


@app.on_event("startup")
def on_startup():
    """Create tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)
    logger.info("cardswap started (database: %s)", engine.url.render_as_string(hide_password=True))


@app.get("/health")
def health():
    return {"status": "ok"}
