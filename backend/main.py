"""
Umbrella Backend - Main Application Entry Point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.container import build_container
from app.core.exception_handlers import register_exception_handlers
from app.core.logging import logger
from app.core.middleware import AuditLoggingMiddleware, CorrelationIdMiddleware, SecurityHeadersMiddleware
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.api.routes import auth, policies, claims, users, integrations, health

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} in {settings.APP_ENV} mode")
    if settings.DATABASE_AUTO_CREATE:
        Base.metadata.create_all(bind=engine)
    # Tests install their own container before startup
    if getattr(app.state, "container", None) is None:
        app.state.container = build_container(settings, SessionLocal)
    yield
    # Shutdown
    logger.info("Shutting down...")
    app.state.container.close()


app = FastAPI(
    title=settings.APP_NAME,
    description="Insurance Policy & Claims Administration",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware runs outermost-last: correlation ids must wrap everything else
app.add_middleware(AuditLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Include API Routers
app.include_router(auth.router, prefix=f"{API_PREFIX}/auth", tags=["Authentication"])
app.include_router(policies.router, prefix=f"{API_PREFIX}/policies", tags=["Policies"])
app.include_router(claims.router, prefix=f"{API_PREFIX}/claims", tags=["Claims"])
app.include_router(users.router, prefix=f"{API_PREFIX}/users", tags=["Users"])
app.include_router(integrations.router, prefix=f"{API_PREFIX}/integrations", tags=["Integrations"])
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get("/")
async def root():
    return {
        "status": "UP",
        "app": settings.APP_NAME,
        "env": settings.APP_ENV,
    }
