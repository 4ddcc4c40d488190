# /copay_ussd/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from copay_ussd.utils.logging import setup_logging
from copay_ussd.utils.alerting import alerting_service
from copay_ussd.services.directory_service import db_service
from copay_ussd.services.payment_service import payment_service
from copay_ussd.services.session_store import session_store

# This file manages the application's lifespan, handling startup tasks like
# creating indexes and shutdown tasks like cleaning up connections.

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()

    logger.info("Application starting up...")

    await db_service.create_indexes()

    logger.info("Application startup complete. Ready to accept requests.")

    yield  # Application is now running

    logger.info("Application shutting down...")

    await payment_service.cleanup()
    await alerting_service.cleanup()
    if hasattr(session_store, "close"):
        await session_store.close()
    if db_service.client:
        db_service.client.close()
