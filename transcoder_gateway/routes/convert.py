import json
import logging
from functools import lru_cache
from typing import Annotated, AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from transcoder_gateway.configs import settings
from transcoder_gateway.const import DEFAULT_INPUT_FORMAT, DEFAULT_OUTPUT_FORMAT, OutputFormat
from transcoder_gateway.converter.acquire import InputAcquirer, InputSources
from transcoder_gateway.converter.dispatcher import resolve_output_format
from transcoder_gateway.converter.errors import InputAcquisitionError
from transcoder_gateway.converter.models import ConversionFailure, ConversionRequest, ConversionResult
from transcoder_gateway.converter.runner import ProcessRunner
from transcoder_gateway.converter.service import ConversionService
from transcoder_gateway.handlers import failure_response
from transcoder_gateway.schemas import (
    AudioConversionResponse,
    ErrorResponse,
    ImageConversionResponse,
    VideoConversionResponse,
)
from transcoder_gateway.utils.base64_utils import encode_payload
from transcoder_gateway.utils.buffer_pool import BufferPool

convert_router = APIRouter()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
FORM_PART_HEADROOM = 64 * 1024


@lru_cache
def get_buffer_pool() -> BufferPool:
    return BufferPool(max_idle=settings.buffer_pool_size)


def get_conversion_service(buffer_pool: Annotated[BufferPool, Depends(get_buffer_pool)]) -> ConversionService:
    runner = ProcessRunner(
        buffer_pool,
        executable=settings.ffmpeg_binary,
        timeout=settings.process_timeout,
        temp_dir=settings.temp_dir,
    )
    return ConversionService(runner, strict_duration=settings.strict_duration)


def get_input_acquirer() -> InputAcquirer:
    return InputAcquirer(max_bytes=settings.max_input_bytes)


async def run_conversion(
    service: ConversionService, payload: bytes, input_format: str, output_format: OutputFormat
) -> ConversionResult | ConversionFailure:
    request = ConversionRequest(raw_bytes=payload, input_format=input_format, output_format=output_format)
    return await service.try_convert(request)


def form_part_limit() -> int:
    """Largest accepted form field: the input limit as base64 text, plus headroom."""
    return settings.max_input_bytes * 4 // 3 + FORM_PART_HEADROOM


async def read_form(request: Request) -> FormData:
    """
    Parse a multipart or urlencoded body. Other content types yield an empty form.

    Raises:
        InputAcquisitionError: If the body is malformed (400) or a field exceeds the size limit (413).
    """
    content_type = request.headers.get("content-type", "").lower()
    if not content_type.startswith(FORM_CONTENT_TYPES):
        return FormData()
    try:
        return await request.form(max_part_size=form_part_limit())
    except (HTTPException, MultiPartException) as e:
        message = str(getattr(e, "detail", None) or getattr(e, "message", e))
        status_code = 413 if "exceeded maximum size" in message else 400
        raise InputAcquisitionError(f"Invalid form data: {message}", status_code=status_code) from e


async def request_form(request: Request) -> AsyncIterator[FormData]:
    form = await read_form(request)
    try:
        yield form
    finally:
        await form.close()


def form_text(form: FormData, name: str, default: Optional[str] = None) -> Optional[str]:
    value = form.get(name)
    if isinstance(value, str) and value:
        return value
    return default


def form_sources(form: FormData) -> InputSources:
    upload = form.get("file")
    return InputSources(
        upload=upload if isinstance(upload, UploadFile) else None,
        base64_data=form_text(form, "base64"),
        url=form_text(form, "url"),
    )


async def read_gif_sources(request: Request, form: FormData) -> InputSources:
    """
    Collect input channels for the GIF endpoint.

    The URL is looked up in the form, then the query string, then a JSON body.
    """
    sources = form_sources(form)
    if sources.url:
        logger.info(f"URL found in form data: {sources.url}")

    if not sources.url and request.query_params.get("url"):
        sources.url = request.query_params["url"]
        logger.info(f"URL found in query params: {sources.url}")

    if not sources.url and request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
        if isinstance(body, dict) and isinstance(body.get("url"), str) and body["url"]:
            sources.url = body["url"]
            logger.info(f"URL found in JSON body: {sources.url}")

    return sources


@convert_router.post(
    "/process-audio",
    response_model=AudioConversionResponse,
    responses=ERROR_RESPONSES,
    summary="Convert audio to the requested format",
)
async def process_audio(
    form: Annotated[FormData, Depends(request_form)],
    service: Annotated[ConversionService, Depends(get_conversion_service)],
    acquirer: Annotated[InputAcquirer, Depends(get_input_acquirer)],
):
    """
    Convert audio and report its duration.

    Form fields: ``file``, ``base64`` or ``url`` for the input, ``input_format``
    (default ``ogg``) and ``output_format`` (default ``ogg``). Unknown output
    formats use the compact ogg/opus profile.
    """
    output_format = form_text(form, "output_format", DEFAULT_OUTPUT_FORMAT.value)
    target = resolve_output_format(output_format, strict=settings.strict_output_formats)
    payload = await acquirer.acquire(form_sources(form))

    outcome = await run_conversion(service, payload, form_text(form, "input_format", DEFAULT_INPUT_FORMAT), target)
    if isinstance(outcome, ConversionFailure):
        return failure_response(outcome)

    return AudioConversionResponse(
        duration=outcome.duration_seconds,
        audio=encode_payload(outcome.output_bytes),
        format=outcome.output_format.container,
    )


@convert_router.post(
    "/gif-to-mp4",
    response_model=VideoConversionResponse,
    responses=ERROR_RESPONSES,
    summary="Convert an animated GIF to MP4",
)
async def gif_to_mp4(
    request: Request,
    form: Annotated[FormData, Depends(request_form)],
    service: Annotated[ConversionService, Depends(get_conversion_service)],
    acquirer: Annotated[InputAcquirer, Depends(get_input_acquirer)],
):
    """
    Convert a GIF to H.264 MP4.

    Accepts multipart or urlencoded form data (``file``, ``base64`` or ``url``),
    a ``url`` query parameter, or a JSON body ``{"url": ...}``. A URL takes
    precedence over the other channels.
    """
    logger.info(f"Received GIF to MP4 request. Content-Type: {request.headers.get('content-type')}")
    sources = await read_gif_sources(request, form)
    payload = await acquirer.acquire(sources, prefer_url=True)

    outcome = await run_conversion(service, payload, "gif", OutputFormat.GIF_MP4)
    if isinstance(outcome, ConversionFailure):
        return failure_response(outcome)

    return VideoConversionResponse(video=encode_payload(outcome.output_bytes), format=outcome.output_format.container)


@convert_router.post(
    "/video-to-mp4",
    response_model=VideoConversionResponse,
    responses=ERROR_RESPONSES,
    summary="Convert a video to H.264/AAC MP4",
)
async def video_to_mp4(
    form: Annotated[FormData, Depends(request_form)],
    service: Annotated[ConversionService, Depends(get_conversion_service)],
    acquirer: Annotated[InputAcquirer, Depends(get_input_acquirer)],
):
    """Form fields: ``file``, ``base64`` or ``url``, and ``input_format`` (default ``mp4``)."""
    payload = await acquirer.acquire(form_sources(form))

    outcome = await run_conversion(service, payload, form_text(form, "input_format", "mp4"), OutputFormat.VIDEO_MP4)
    if isinstance(outcome, ConversionFailure):
        return failure_response(outcome)

    return VideoConversionResponse(video=encode_payload(outcome.output_bytes), format=outcome.output_format.container)


@convert_router.post(
    "/image-to-png",
    response_model=ImageConversionResponse,
    responses=ERROR_RESPONSES,
    summary="Normalize an image to PNG",
)
async def image_to_png(
    form: Annotated[FormData, Depends(request_form)],
    service: Annotated[ConversionService, Depends(get_conversion_service)],
    acquirer: Annotated[InputAcquirer, Depends(get_input_acquirer)],
):
    payload = await acquirer.acquire(form_sources(form))

    outcome = await run_conversion(service, payload, form_text(form, "input_format", "png"), OutputFormat.PNG)
    if isinstance(outcome, ConversionFailure):
        return failure_response(outcome)

    return ImageConversionResponse(image=encode_payload(outcome.output_bytes), format=outcome.output_format.container)
