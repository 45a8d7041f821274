"""
main.py — FastAPI application for the workshop inventory sync service

Wires routers, the inbound rate limiter and request-ID logging. Schema is
managed by Alembic (alembic upgrade head), never created here.

Called by: uvicorn (uvicorn inventory_sync.main:app)
Depends on: routers/*, logging_config.py, rate_limit.py
"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import APP_VERSION, settings
from .logging_config import setup_logging
from .rate_limit import limiter
from .routers import functions, sync_logs, variants

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.shopify_store_domain or not settings.shopify_access_token:
        logger.warning("Shopify credentials not set; sync functions will return 500")
    logger.info("Inventory sync {} starting", APP_VERSION)
    yield
    logger.info("Inventory sync shutting down")


app = FastAPI(title="Workshop Inventory Sync", version=APP_VERSION, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every log line and response with a short request id."""
    request_id = uuid.uuid4().hex[:8]
    start = time.perf_counter()
    with logger.contextualize(request_id=request_id):
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "{} {} -> {} ({:.0f} ms)",
            request.method, request.url.path, response.status_code, elapsed_ms,
        )
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(functions.router)
app.include_router(sync_logs.router)
app.include_router(variants.router)


@app.get("/health")
def health():
    return {"status": "ok", "version": APP_VERSION}
