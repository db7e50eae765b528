from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from farmconnect.config import settings
from farmconnect.middleware.exceptions import register_exception_handlers
from farmconnect.middleware.security import SecurityHeadersMiddleware
from farmconnect.routers import auth, health, orders, payments, stripe, transport
from farmconnect.services.scheduler import lifespan

app = FastAPI(
    title="FarmConnect",
    description="Farm-to-market ordering, payments and delivery",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
# Public (web client and gateway)
app.include_router(health.router)
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(stripe.router, prefix="/api/stripe", tags=["stripe"])

# Authenticated (FarmConnect access token)
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(transport.router, prefix="/api/transport", tags=["transport"])
