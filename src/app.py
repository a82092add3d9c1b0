"""Energi Hive payments FastAPI application.

Web server that processes commands synchronously via HTTP. Each request is
wrapped in the payments domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied (see domain.toml).
# Settings are loaded eagerly: a missing webhook secret or encryption key
# must stop the process here rather than fail the first request.
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from payments.config import get_settings
from payments.domain import payments
from payments.utils.logging import bind_request, clear_request

payments.init()
settings = get_settings()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Energi Hive Payments API",
    description="Payment lifecycle and provider webhook reconciliation for BPAY, PayID, direct debit and bank transfer",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_DOMAIN_PREFIXES = ("/payments", "/orders")


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the payments domain context for domain routes."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        bind_request(request_id=request.headers.get("x-request-id") or uuid4().hex, path=request.url.path)
        try:
            with payments.domain_context():
                response = await call_next(request)
        finally:
            clear_request()
        return response
    # No domain match, pass through (health check, docs, etc.)
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from payments.api.errors import register_error_handlers  # noqa: E402
from payments.api.routes import order_router, payment_router  # noqa: E402

app.include_router(payment_router)
app.include_router(order_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"payments": {"name": payments.name}},
            "gateway_mode": settings.gateway_mode,
        }
    )
