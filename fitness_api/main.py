"""
Main FastAPI application
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fitness_api.config import settings
from fitness_api.database.connection import create_tables, dispose_database, init_database, is_initialized
from fitness_api.database.queries import db_session
from fitness_api.middleware.request_context import request_context_middleware
from fitness_api.routes import (
    activity,
    analytics,
    auth,
    health,
    integrations,
    nutrition,
    sessions,
    users,
    workouts,
)
from fitness_api.services.analytics_service import AnalyticsService
from fitness_api.utils.errors import register_exception_handlers
from fitness_api.utils.logging_config import setup_logging

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if is_initialized():
        if settings.DATABASE_AUTO_CREATE:
            await create_tables()
        async with db_session() as session:
            await AnalyticsService.purge_expired(session)
    logger.info("Fitness API started (%s, v%s)", settings.ENVIRONMENT, settings.APP_VERSION)
    yield
    await dispose_database()
    logger.info("Fitness API stopped")


# Create FastAPI app
app = FastAPI(
    title="Fitness API",
    description="Backend API for fitness tracking: accounts, activity, analytics, sessions and plans",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
    expose_headers=settings.CORS_EXPOSE_HEADERS,
    max_age=settings.CORS_MAX_AGE,
)

# Correlation id, security headers, request log and audit trail
app.middleware("http")(request_context_middleware)

register_exception_handlers(app)

# Initialize database
init_database()

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, tags=["Auth"])
app.include_router(users.router, tags=["Users"])
app.include_router(activity.router, tags=["Activity"])
app.include_router(analytics.router, tags=["Analytics"])
app.include_router(sessions.router, tags=["Sessions"])
app.include_router(integrations.router, tags=["Integrations"])
app.include_router(workouts.router, tags=["Workouts"])
app.include_router(nutrition.router, tags=["Nutrition"])
