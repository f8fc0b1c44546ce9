import logging
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from churchsite.config import settings
from churchsite.database import Base, engine
from churchsite.exception_handlers import register_exception_handlers
from churchsite.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from churchsite.middleware.rate_limit import configure_rate_limiting
from churchsite.routes import analytics, monitoring
from churchsite.routes.engagement import church_router, community_router
from churchsite.scheduler import schedule_trending_warmup, scheduler
from churchsite.utils.cache import cache_manager
from churchsite.utils.metrics import PrometheusMiddleware
from churchsite.utils.view_store import close_view_store


setup_structured_logging(log_level=settings.log_level, json_format=settings.log_json)
logger = logging.getLogger(__name__)


async def startup_event():
    """Tasks to run at application startup."""
    logger.info(f"Starting {settings.app_name} ({settings.environment})...")
    if settings.debug:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created (if not existing).")

    await cache_manager.connect()

    schedule_trending_warmup()
    scheduler.start()


async def shutdown_event():
    logger.info("Shutting down the application...")
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await close_view_store()
    await cache_manager.disconnect()


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Blog engagement API for the church site: views, likes, engagement and stats",
        debug=settings.debug,
        version=settings.app_version,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    configure_rate_limiting(app)
    register_exception_handlers(app)

    app.include_router(church_router)
    app.include_router(community_router)
    app.include_router(analytics.router)
    app.include_router(monitoring.router)

    app.on_event("startup")(startup_event)
    app.on_event("shutdown")(shutdown_event)

    if settings.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)  # Logs SQL statements

    return app


app = create_app()


@app.get("/", tags=["Root"])
async def root():
    return {"message": f"Welcome to the {settings.app_name} API"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
