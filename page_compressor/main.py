"""Page Compressor backend.

FastAPI service that fetches websites, strips CSS, images, video and fonts,
and reports before/after metrics. Also serves optimized pages directly and
stores metrics reported by the client runtime.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from page_compressor import __version__
from page_compressor.api import metrics, optimize
from page_compressor.config import Config

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=Config.log_level().upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body", "message": str(exc.errors())},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Page Compressor",
        description="Strips heavy resources from web pages and reports the savings",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, _invalid_request)

    # Include routers
    app.include_router(optimize.router, tags=["optimize"])
    app.include_router(metrics.router, tags=["metrics"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "Page Compressor",
            "version": __version__,
            "endpoints": {
                "optimize": "POST /api/optimize",
                "optimized_page": "GET /optimize?url=...",
                "store_metrics": "POST /api/metrics",
                "metrics": "GET /api/metrics?url=...",
                "pagespeed": "GET /api/pagespeed?url=...&strategy=mobile|desktop",
                "health": "GET /health",
            },
        }

    return app


app = create_app()


def run() -> None:
    import uvicorn

    configure_logging()
    port = Config.port()
    logger.info("Starting Page Compressor backend on http://localhost:%d", port)
    logger.info("Health check: http://localhost:%d/health", port)
    uvicorn.run(app, host=Config.host(), port=port, log_level=Config.log_level())


if __name__ == "__main__":
    run()
