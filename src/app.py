"""Storesplit FastAPI application.

Web server that processes dispatch commands synchronously via HTTP. Each
request runs inside the dispatch domain context. The reconciler loop runs
alongside the app so split orders' rollups stay current.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

import asyncio
from contextlib import asynccontextmanager

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - unset/"test" → memory provider, event_processing = "sync"
#   - "production" → PostgreSQL provider, event_processing = "async"
from dispatch.domain import dispatch  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

dispatch.init()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    from dispatch.reconciliation.reconciler import Reconciler

    stop = asyncio.Event()
    reconciler = Reconciler()

    task = asyncio.create_task(reconciler.run(stop, domain=dispatch))
    yield
    stop.set()
    await task


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Storesplit API",
    description="Order routing into per-store divisions and their completion status",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

_DOMAIN_PREFIXES = ("/orders", "/stores")


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the dispatch domain context for each domain request."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        with dispatch.domain_context():
            response = await call_next(request)
        return response
    # Not a domain route: pass through (health check, docs, etc.)
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from dispatch.api import order_router, store_router  # noqa: E402

app.include_router(store_router)
app.include_router(order_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domains": {"dispatch": {"name": dispatch.name}}})
