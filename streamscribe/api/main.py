"""
FastAPI application factory.

The lifespan loads one Transcriber from configuration at startup (unless a
transcriber was injected) and unloads it at shutdown.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI

from streamscribe import __version__
from streamscribe.api.routes import health, transcription
from streamscribe.config import AppConfig, get_config
from streamscribe.logging import get_logger, setup_logging

logger = get_logger("api")


def create_app(
    transcriber: Optional[Any] = None,
    config: Optional[AppConfig] = None,
    config_path: Optional[Path] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        transcriber: Pre-built Transcriber; skips model loading when given
        config: Application config; the global one is used otherwise
        config_path: Optional path to configuration file

    Returns:
        Configured FastAPI application
    """
    app_config = config or get_config(config_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        setup_logging(app_config.logging)
        logger.info("streamscribe server starting...")

        app.state.config = app_config
        owned = None
        if transcriber is None:
            # Lazy import to avoid loading faster_whisper at module load time
            from streamscribe.core.transcriber import Transcriber

            logger.info("Preloading transcription model...")
            owned = await Transcriber.from_config(app_config.transcription_config())
            app.state.transcriber = owned
        else:
            app.state.transcriber = transcriber

        logger.info("Server startup complete")
        yield

        logger.info("Server shutting down...")
        app.state.transcriber = None
        if owned is not None:
            await owned.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="streamscribe",
        description="Audio normalization and streaming transcription server",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = app_config
    app.state.transcriber = transcriber

    app.include_router(health.router, tags=["Health"])
    app.include_router(
        transcription.router, prefix="/api/transcribe", tags=["Transcription"]
    )
    return app


def main() -> None:
    """Run the API server with uvicorn, using the ``api`` config section."""
    import uvicorn

    app_config = get_config()
    uvicorn.run(
        create_app(config=app_config),
        host=app_config.get("api", "host", default="127.0.0.1"),
        port=int(app_config.get("api", "port", default=8000)),
        log_level=str(app_config.get("logging", "level", default="INFO")).lower(),
        access_log=True,
    )


if __name__ == "__main__":
    main()
