"""Main FastAPI application"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from app.config import settings
from app.core.exceptions import StoreError
from app.database import connect_to_mongo, close_mongo_connection
from app.api.deps import get_notifier
from app.api.v1 import books, cart, orders, payments, returns
from app.schemas.common import ErrorResponse
from app.utils.dates import utcnow

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events"""
    # Startup
    logger.info(f"Starting up {settings.app_name}...")
    await connect_to_mongo()
    logger.info("Application ready!")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await get_notifier().drain()
    await close_mongo_connection()
    logger.info("Shutdown complete!")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="""
    Storefront and back-office API for an online bookstore.

    ## Features

    * **Catalog**: Books, categories, gift-with-purchase items and shipping rates
    * **Cart**: Per-user or per-guest-session carts with one free gift
    * **Orders**: Checkout through PayPal, Razorpay or Stripe with atomic stock decrement
    * **Returns**: Return requests against delivered orders, admin review and gateway refunds

    ## Authentication

    Customer and admin endpoints take a JWT in the Authorization header:
    ```
    Authorization: Bearer <your_jwt_token>
    ```
    Guests identify their cart with an `X-Session-Id` header and their orders by email.
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url] if not settings.debug else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoints
@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint to verify the API is running.
    """
    return {
        "success": True,
        "status": "healthy",
        "version": "1.0.0",
        "app": settings.app_name
    }


@app.get("/liveness", tags=["Health"])
async def liveness_probe():
    """
    Kubernetes liveness probe endpoint.
    """
    return {
        "status": "alive",
        "timestamp": utcnow().isoformat()
    }


@app.get("/readiness", tags=["Health"])
async def readiness_probe():
    """
    Kubernetes readiness probe endpoint.
    Checks database connectivity.
    """
    from app.database import database

    if database.db is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "database": "not connected", "timestamp": utcnow().isoformat()},
        )
    try:
        await database.db.command("ping")
    except Exception as e:
        logger.error(f"Readiness check failed: {str(e)}")
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "database": "unreachable", "timestamp": utcnow().isoformat()},
        )
    return {
        "status": "ready",
        "database": "connected",
        "timestamp": utcnow().isoformat()
    }


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint with API information.
    """
    return {
        "success": True,
        "message": f"Welcome to {settings.app_name}",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
    }


# Include routers
app.include_router(
    books.router,
    prefix="/api",
    tags=["Catalog"]
)

app.include_router(
    books.admin_router,
    prefix="/api/admin",
    tags=["Admin - Catalog"]
)

app.include_router(
    cart.router,
    prefix="/api",
    tags=["Cart"]
)

app.include_router(
    payments.router,
    prefix="/api/payments",
    tags=["Payments"]
)

app.include_router(
    orders.router,
    prefix="/api",
    tags=["Orders"]
)

app.include_router(
    orders.admin_router,
    prefix="/api/admin",
    tags=["Admin - Orders"]
)

app.include_router(
    returns.router,
    prefix="/api",
    tags=["Returns"]
)

app.include_router(
    returns.admin_router,
    prefix="/api/admin",
    tags=["Admin - Returns"]
)


# Error handlers
@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """Map domain errors to their HTTP status with a customer-safe detail"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    elif exc.public_detail != str(exc):
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=type(exc).__name__, detail=exc.public_detail).model_dump(),
    )


@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Custom 404 handler"""
    return JSONResponse(
        status_code=404,
        content={
            "success": False,
            "error": "Not Found",
            "detail": "The requested resource was not found"
        }
    )


@app.exception_handler(500)
async def internal_error_handler(request, exc):
    """Custom 500 handler"""
    logger.error(f"Internal server error: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred. Please try again later."
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info"
    )
