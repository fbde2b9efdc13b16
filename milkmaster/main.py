"""
Storefront Application

Cart and checkout service for the MilkMaster dairy storefront.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from .routes import cart_router, checkout_router, orders_router, auth_router
from .routes.deps import close_clients
from .core.config import settings
from .core.session import session_manager

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Storefront starting up...")
    logger.info(f"Backend API: {settings.api_base_url}")
    logger.info(f"Local storage: {settings.storage_path}")
    logger.info(f"OTP mail relay configured: {settings.mail_relay_configured}")

    yield

    logger.info("Storefront shutting down...")
    await close_clients()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Cart and checkout for the MilkMaster dairy storefront",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(orders_router)
app.include_router(auth_router)


@app.get("/")
async def home():
    return {
        "message": "MilkMaster Storefront API",
        "docs": "/docs",
        "endpoints": {
            "cart": "/api/cart",
            "checkout": "/api/checkout",
            "orders": "/api/orders",
            "auth": "/api/auth",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "milkmaster-storefront",
        "backend_url": settings.api_base_url,
        "mail_relay_configured": settings.mail_relay_configured,
        "open_checkouts": len(session_manager.sessions),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "milkmaster.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
