import logging
import secrets

from fastapi import FastAPI, Depends, Security, HTTPException
from fastapi.security import APIKeyHeader
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from transcoder_gateway import __version__
from transcoder_gateway.configs import settings
from transcoder_gateway.converter.errors import ConversionError
from transcoder_gateway.handlers import conversion_exception_handler, http_exception_handler
from transcoder_gateway.middleware import OriginAllowListMiddleware
from transcoder_gateway.routes import convert_router
from transcoder_gateway.utils.http_utils import DownloadError

logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)
app = FastAPI(
    title="Transcoder Gateway",
    version=__version__,
    description="Convert audio, GIF, video and image payloads through ffmpeg.",
)
api_key_header = APIKeyHeader(name="apikey", auto_error=False)
app.add_middleware(OriginAllowListMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["Origin", "Content-Type", "Accept", "Authorization", "apikey"],
)
app.add_exception_handler(ConversionError, conversion_exception_handler)
app.add_exception_handler(DownloadError, conversion_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)


async def verify_api_key(api_key: str = Security(api_key_header)):
    """
    Verifies the API key for the request.

    Args:
        api_key (str): The value of the `apikey` header.

    Raises:
        HTTPException: If no key is configured on the server, or the key is missing or invalid.
    """
    if not settings.api_key:
        logger.error("API_KEY is not configured, refusing request")
        raise HTTPException(status_code=500, detail="Internal server error")

    if not api_key:
        raise HTTPException(status_code=401, detail="API key not provided")

    if not secrets.compare_digest(api_key.encode(), settings.api_key.encode()):
        raise HTTPException(status_code=401, detail="Invalid API key")


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


app.include_router(convert_router, tags=["convert"], dependencies=[Depends(verify_api_key)])


def run():
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
