"""
Facility.IA - Main Application Entry Point
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from facility.config import settings
from facility.db import init_db
from facility.api import (
    chat_router,
    agents_router,
    knowledge_router,
    user_router,
    admin_router,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - runs on startup and shutdown"""
    logger.info(f"{settings.app_name} starting up...")
    await init_db()
    logger.info("Database initialized")

    # Resolve the provider variant once so a missing key is reported at boot
    from facility.services import get_llm_service
    llm_service = get_llm_service()
    if llm_service.is_configured:
        logger.info(f"Chat model ready: {settings.chat_model}")
    else:
        logger.warning(f"Chat is in offline mode: {llm_service.reason}")

    yield

    logger.info(f"{settings.app_name} shutting down...")


app = FastAPI(
    title=settings.app_name,
    description="Multi-tenant AI agents with plan quotas and a knowledge base",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router, prefix=settings.api_prefix)
app.include_router(agents_router, prefix=settings.api_prefix)
app.include_router(knowledge_router, prefix=settings.api_prefix)
app.include_router(user_router, prefix=settings.api_prefix)
app.include_router(admin_router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "app": settings.app_name}
