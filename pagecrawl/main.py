"""FastAPI app entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pagecrawl.api.routes import router
from pagecrawl.api.service import JobService
from pagecrawl.config import get_settings
from pagecrawl.crawl import Crawler
from pagecrawl.jobs.events import SubscriptionRegistry
from pagecrawl.jobs.store import JobStore
from pagecrawl.logging_config import setup_logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "pagecrawl"

try:
    SERVICE_VERSION = version(SERVICE_NAME)
except PackageNotFoundError:
    SERVICE_VERSION = "0.0.0"


def create_app(crawler: Crawler | None = None) -> FastAPI:
    """Build the application; *crawler* replaces the one built from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()

        # Initialize logging FIRST so all subsequent operations produce JSON logs
        setup_logging(settings.log_level)
        logger.info("starting crawl service")

        active_crawler = crawler or Crawler.from_settings(settings)
        service = JobService(active_crawler, JobStore(), SubscriptionRegistry())

        app.state.settings = settings
        app.state.crawler = active_crawler
        app.state.service = service

        logger.info(
            "crawl service ready",
            extra={
                "max_requests_per_second": settings.max_requests_per_second,
                "max_concurrency": settings.max_concurrency,
                "default_proxies": len(settings.proxy_list),
                "headless": settings.headless,
            },
        )

        yield

        logger.info("shutting down crawl service")
        await service.shutdown()
        await active_crawler.close()

    app = FastAPI(title="Crawl Service", version=SERVICE_VERSION, lifespan=lifespan)
    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(exc)},
        )

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/about")
    async def about():
        return {"name": SERVICE_NAME, "version": SERVICE_VERSION}

    return app


app = create_app()
