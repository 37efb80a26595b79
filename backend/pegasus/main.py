"""
Pegasus Support API - Main Application Entry Point
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from bson.errors import InvalidId
import logging

from pegasus.core.config import settings
from pegasus.core.database import (
    MongoStore,
    connect_to_mongo,
    create_indexes,
    close_mongo_connection,
)
from pegasus.core import database
from pegasus.core.errors import ServiceError
from pegasus.api.routes import tickets, ticket_presets, users

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle manager for FastAPI application
    Runs on startup and shutdown
    """
    logger.info("Starting Pegasus Support API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Store connection mode: {settings.STORE_CONNECTION_MODE}")

    if settings.uses_pooled_connections:
        await connect_to_mongo()
        await create_indexes(MongoStore(database.client))

    yield

    logger.info("👋 Shutting down Pegasus Support API...")
    await close_mongo_connection()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Support tickets, user moderation and token accounting",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "pegasus-api",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "message": settings.APP_NAME,
        "version": settings.VERSION,
        "docs": "/docs",
        "redoc": "/redoc"
    }


# Include API routers (presets first so /templates is not read as a ticket id)
app.include_router(ticket_presets.router, prefix="/api/tickets", tags=["Ticket Presets"])
app.include_router(tickets.router, prefix="/api/tickets", tags=["Tickets"])
app.include_router(users.router, prefix="/api/user", tags=["User Management"])


# Global exception handlers
@app.exception_handler(ServiceError)
async def service_error_handler(request, exc: ServiceError):
    """Handle errors raised by the service layer"""
    if exc.status_code >= 500:
        logger.error(f"Service error: {exc.message}", exc_info=True)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response()
    )


@app.exception_handler(InvalidId)
async def invalid_id_handler(request, exc):
    """Handle malformed ObjectIds"""
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid identifier", "detail": str(exc)}
    )


@app.exception_handler(ValueError)
async def value_error_handler(request, exc):
    """Handle ValueError exceptions"""
    logger.error(f"ValueError: {exc}", exc_info=True)
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc)}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "type": "internal_error"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pegasus.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
