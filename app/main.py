import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.database import init_db, async_session_maker
from app.api import api_router
from app.gateways.registry import resolve_gateway
from app.logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: initialize database and resolve the payment gateway once
    configure_logging()
    await init_db()
    async with async_session_maker() as session:
        app.state.gateway = await resolve_gateway(session)
    app.state.retired_gateways = []
    logger.info("Payment gateway ready: %s", app.state.gateway.provider.value)
    yield
    # Shutdown: release the HTTP clients of the active and retired gateways
    for gateway in [app.state.gateway, *app.state.retired_gateways]:
        await gateway.aclose()


app = FastAPI(
    title="UPI Payment Service",
    description="Payment initiation, reconciliation and refunds for storefront orders",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware - configure for security
# In production, replace with specific allowed origins
ALLOWED_ORIGINS = [
    "http://localhost:8000",
    "http://127.0.0.1:8000",
    "http://localhost:3000",  # Storefront checkout during local development
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "X-Webhook-Signature"],
)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "name": "UPI Payment Service",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
