"""Optimization API endpoints."""
import html
import logging
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import HTMLResponse, JSONResponse

from page_compressor.models.schemas import ErrorResponse, OptimizeRequest, OptimizeResponse
from page_compressor.services.errors import InvalidInput
from page_compressor.services.optimizer import OptimizeOptions
from page_compressor.services.pipeline import get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or malformed URL"},
    500: {"model": ErrorResponse, "description": "Fetching or optimizing failed"},
}


def _error_page(title: str, message: str, status_code: int) -> HTMLResponse:
    body = (
        "<html><head><title>Error</title></head><body>"
        f"<h1>{html.escape(title)}</h1><p>{html.escape(message)}</p>"
        "</body></html>"
    )
    return HTMLResponse(content=body, status_code=status_code)


@router.post("/api/optimize", response_model=OptimizeResponse, responses=ERROR_RESPONSES)
async def optimize(request: OptimizeRequest):
    """Fetch a website, optimize it and return the optimized HTML with metrics."""
    options = OptimizeOptions(
        remove_css=request.remove_css,
        remove_images=request.remove_images,
        remove_videos=request.remove_videos,
        remove_fonts=request.remove_fonts,
    )
    try:
        result = await get_pipeline().optimize(request.url, options)
    except InvalidInput as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
    except Exception as e:
        logger.exception("Optimization error for %s", request.url)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to optimize website", "message": str(e)},
        )

    return OptimizeResponse(
        optimized_html=result.html,
        metrics=result.metrics_dict(),
        cached=result.cached,
        url=result.url,
    )


@router.get("/optimize", response_class=HTMLResponse)
async def optimize_page(url: Optional[str] = None):
    """Serve a fully optimized page directly, for opening in a new tab."""
    if not url:
        return _error_page(
            "URL parameter is required",
            "Usage: /optimize?url=https://example.com",
            status.HTTP_400_BAD_REQUEST,
        )

    try:
        result = await get_pipeline().optimize(url, OptimizeOptions())
    except InvalidInput:
        return _error_page("Invalid URL format", "Please provide a valid URL", status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        logger.exception("Error optimizing page %s", url)
        return _error_page("Failed to optimize website", str(e), status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTMLResponse(content=result.html)
