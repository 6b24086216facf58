import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .configs import settings
from .converter.errors import ConversionError
from .converter.models import ConversionFailure
from .converter.result import to_failure
from .utils.http_utils import DownloadError

logger = logging.getLogger(__name__)


def failure_response(failure: ConversionFailure) -> JSONResponse:
    """
    Translate a classified conversion failure into an HTTP response.

    Raw transcoder diagnostics are only included when ``expose_diagnostics`` is enabled.
    """
    content = {"error": failure.detail, "stage": failure.stage.value}
    if settings.expose_diagnostics and failure.diagnostics:
        content["details"] = failure.diagnostics
    return JSONResponse(status_code=failure.status_code, content=content)


def handle_exceptions(exception: Exception) -> JSONResponse:
    """
    Handle exceptions and return appropriate HTTP responses.

    Args:
        exception (Exception): The exception that was raised.

    Returns:
        JSONResponse: An HTTP response corresponding to the exception type.
    """
    if isinstance(exception, ConversionError):
        logger.error(f"Conversion failed at {exception.stage.value}: {exception.detail}")
        return failure_response(to_failure(exception))
    elif isinstance(exception, DownloadError):
        logger.error(f"Error downloading content: {exception}")
        return JSONResponse(status_code=exception.status_code, content={"error": exception.message})
    else:
        logger.exception(f"Internal server error while handling request: {exception}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


async def conversion_exception_handler(request: Request, exception: Exception) -> JSONResponse:
    return handle_exceptions(exception)


async def http_exception_handler(request: Request, exception: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exception.status_code, content={"error": exception.detail}, headers=exception.headers
    )
