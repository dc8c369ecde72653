"""
examdesk Backend - Main FastAPI Application

Timed, proctored candidate assessments with AI-assisted grading.
Version: 1.0
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config.settings import settings
from .routes.admin_routes import create_admin_routes
from .routes.candidate_routes import create_candidate_routes
from .services import ScoringService, SessionManager, bootstrap_store
from .store import ExamStore, MongoStorage, build_storage

# Setup logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app(
    store: Optional[ExamStore] = None,
    scorer: Optional[ScoringService] = None,
    **session_options,
) -> FastAPI:
    """Build the API around a store, a scorer and a live session registry."""
    if store is None:
        store = ExamStore(build_storage(settings.STORAGE_BACKEND))
    if scorer is None:
        scorer = ScoringService()
    sessions = SessionManager(store, scorer, **session_options)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """FastAPI lifespan context manager for startup/shutdown."""
        # STARTUP
        logger.info("🚀 examdesk Backend Starting Up...")

        try:
            settings.validate()
            logger.info("✅ Settings validated")

            if isinstance(store.storage, MongoStorage):
                # Test connection
                await store.storage.db.client.server_info()
                logger.info(f"✅ Connected to MongoDB: {settings.DATABASE_NAME}")
                try:
                    await store.storage.create_indexes()
                except Exception as e:
                    logger.warning(f"Index creation warning: {e}")

            if await bootstrap_store(store):
                logger.info("✅ Default exam data seeded")

            if scorer.client is None:
                logger.warning("⚠️  No LLM API key configured, submissions will not be auto-graded")

            logger.info("✅ Application startup complete")

        except Exception as e:
            logger.error(f"❌ Startup failed: {e}")
            raise

        yield

        # SHUTDOWN
        logger.info("🛑 Shutting down...")
        await sessions.close_all()
        await store.storage.close()
        logger.info("✅ Storage closed")

    app = FastAPI(
        title="examdesk API",
        description="Candidate assessment with proctoring and AI grading",
        version=__version__,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store
    app.state.scorer = scorer
    app.state.sessions = sessions

    app.include_router(create_candidate_routes(store, sessions))
    app.include_router(create_admin_routes(store, scorer, sessions))

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "storage": settings.STORAGE_BACKEND,
            "scoring": "configured" if scorer.client is not None else "disabled",
            "active_sessions": len(sessions.sessions),
        }

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": "examdesk",
            "version": __version__,
            "docs": "/docs",
            "health": "/api/health"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "examdesk.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
