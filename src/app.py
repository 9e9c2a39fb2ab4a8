"""Checkout core FastAPI application.

Multi-domain web server that processes commands synchronously via HTTP.
Each request is wrapped in the correct domain context based on URL prefix.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# Domains are initialized at module level so uvicorn workers share them.
# PROTEAN_ENV controls which config overlay is applied.
from checkout.domain import checkout
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ordering.domain import ordering
from payments.domain import payments
from shared.api import add_error_handlers
from shared.config import get_settings
from shared.logging import configure_logging
from storecredit.domain import storecredit

settings = get_settings()
configure_logging(settings.log_level, json=settings.log_json)

storecredit.init()
payments.init()
ordering.init()
checkout.init()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_ROUTE_DOMAIN_MAP = {
    "/store-credit": storecredit,
    "/payments": payments,
    "/orders": ordering,
    "/checkout": checkout,
}


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    for prefix, domain in _ROUTE_DOMAIN_MAP.items():
        if path.startswith(prefix):
            return domain
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Checkout Core API",
    description="Checkout payment orchestration — store credit, hosted gateway and order writes",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_error_handlers(app)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the correct Protean domain context for each request."""
    domain = _resolve_domain(request.url.path)
    if domain is not None:
        with domain.domain_context():
            response = await call_next(request)
        return response
    # No domain match: pass straight through
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from checkout.api.routes import checkout_router  # noqa: E402
from ordering.api.routes import order_router  # noqa: E402
from payments.api.routes import payment_router  # noqa: E402
from storecredit.api.routes import store_credit_router  # noqa: E402

app.include_router(store_credit_router)
app.include_router(payment_router)
app.include_router(order_router)
app.include_router(checkout_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.environment,
            "gateway": settings.gateway,
            "domains": {
                "storecredit": {"name": storecredit.name},
                "payments": {"name": payments.name},
                "ordering": {"name": ordering.name},
                "checkout": {"name": checkout.name},
            },
        }
    )
