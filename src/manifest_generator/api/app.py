"""
FastAPI Application Setup.

Main application factory for the Manifest Generator service.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from manifest_generator.api.middleware import RequestLoggingMiddleware, SizeLimitMiddleware
from manifest_generator.api.routes import health, publish
from manifest_generator.config import Settings, load_settings
from manifest_generator.core.exceptions import ManifestGeneratorError, StorageError
from manifest_generator.manifest.generator import TemplateStore
from manifest_generator.pipeline.fetcher import LinkFetcher
from manifest_generator.pipeline.orchestrator import Orchestrator
from manifest_generator.storage.client import create_s3_client
from manifest_generator.version import __version__

logger = logging.getLogger(__name__)

DEFAULT_ASSETS_DIR = Path(__file__).resolve().parent.parent / "assets"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the service."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def create_app(
    settings: Settings | None = None,
    *,
    s3_client=None,
    fetcher: LinkFetcher | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The S3 client, orchestrator and worker pool are created on startup
    and torn down on shutdown.

    Args:
        settings: Service settings (default: loaded from file and environment)
        s3_client: Preconfigured S3 client (default: built from settings)
        fetcher: Link fetcher for POST /link (default: built from settings)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    templates = TemplateStore(settings.template_dir)
    error_page = templates.error_page()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Lifespan context manager for startup and shutdown events.

        Startup builds the shared components and runs the recovery sweep
        over buckets orphaned by earlier runs.
        """
        logger.info("Manifest Generator starting up...")
        logger.info(f"Version: {__version__}")

        client = s3_client if s3_client is not None else create_s3_client(settings)
        orchestrator = Orchestrator.from_settings(settings, client)
        executor = ThreadPoolExecutor(
            max_workers=settings.worker_pool_size, thread_name_prefix="pipeline"
        )
        link_fetcher = fetcher or LinkFetcher(timeout_seconds=settings.fetch_timeout_seconds)

        app.state.settings = settings
        app.state.orchestrator = orchestrator
        app.state.executor = executor
        app.state.fetcher = link_fetcher

        if settings.sweep_on_startup:
            loop = asyncio.get_running_loop()
            try:
                sweep = await loop.run_in_executor(
                    executor,
                    orchestrator.provisioner.destroy_all,
                    settings.sweep_prefix_only,
                )
                logger.info(
                    f"Recovery sweep deleted {len(sweep.destroyed)} bucket(s), "
                    f"{len(sweep.failed)} failed"
                )
            except StorageError as e:
                logger.error(f"Recovery sweep failed: {e}")

        logger.info("Server started.")
        yield

        logger.info("Manifest Generator shutting down...")
        pending = orchestrator.scheduler.pending()
        if pending:
            logger.warning(
                f"{len(pending)} bucket(s) still pending deletion, "
                "left to the next sweep or the lifecycle rule"
            )
        orchestrator.scheduler.shutdown()
        executor.shutdown(wait=True)
        if fetcher is None:
            link_fetcher.close()

    app = FastAPI(
        title="Manifest Generator",
        description="Ephemeral over-the-air installs for iOS packages",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        SizeLimitMiddleware,
        max_request_size=settings.max_upload_size,
        error_page=error_page,
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(publish.router, tags=["Publish"])

    assets_dir = settings.assets_dir or DEFAULT_ASSETS_DIR
    app.mount("/assets", StaticFiles(directory=assets_dir), name="assets")

    @app.get("/", include_in_schema=False)
    async def root() -> RedirectResponse:
        """Redirect to the landing page."""
        return RedirectResponse(url="/assets/index.html")

    @app.exception_handler(ManifestGeneratorError)
    async def pipeline_exception_handler(
        request: Request, exc: ManifestGeneratorError
    ) -> HTMLResponse:
        """Answer pipeline errors with the generic error page."""
        logger.error(f"Request failed: {exc}")
        return HTMLResponse(error_page, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> HTMLResponse:
        """Handle unexpected exceptions."""
        logger.exception(f"Unhandled exception: {exc}")
        return HTMLResponse(error_page, status_code=500)

    return app
