"""
Execution strategy selection and transcoder argument templates.

Every output format maps to a fixed argument template. Formats whose muxer
must seek back into the file after encoding (the MP4 family: ``ipod`` and
``mp4`` with ``faststart``) cannot write to a pipe, so they are staged through
temporary files; everything else streams through stdin/stdout.

Unknown output tags resolve to the compact default audio profile unless strict
format checking is enabled.
"""

import logging

from transcoder_gateway.const import (
    DEFAULT_OUTPUT_FORMAT,
    INPUT_PLACEHOLDER,
    OUTPUT_PLACEHOLDER,
    PIPE_INPUT,
    PIPE_OUTPUT,
    SEEKABLE_OUTPUT_FORMATS,
    IOMode,
    OutputFormat,
)
from transcoder_gateway.converter.errors import InputAcquisitionError, UnsupportedFormatError
from transcoder_gateway.converter.models import ConversionRequest, ExecutionPlan

logger = logging.getLogger(__name__)

_EVEN_DIMENSIONS = "scale=trunc(iw/2)*2:trunc(ih/2)*2"

_H264_MP4 = (
    "-movflags", "faststart",
    "-pix_fmt", "yuv420p",
    "-vf", _EVEN_DIMENSIONS,
    "-f", "mp4",
    "-c:v", "libx264",
    "-preset", "fast",
    "-crf", "23",
)

# Encoding options only; input/output endpoints are added per I/O mode.
FORMAT_TEMPLATES: dict[OutputFormat, tuple[str, ...]] = {
    OutputFormat.MP3: ("-f", "mp3"),
    OutputFormat.WAV: ("-f", "wav"),
    OutputFormat.AAC: ("-c:a", "aac", "-b:a", "128k", "-f", "adts"),
    # AMR-NB only encodes 8 kHz mono
    OutputFormat.AMR: ("-c:a", "libopencore_amrnb", "-b:a", "12.2k", "-ar", "8000", "-ac", "1", "-f", "amr"),
    OutputFormat.M4A: ("-c:a", "aac", "-b:a", "128k", "-f", "ipod"),
    OutputFormat.OGG: (
        "-c:a", "libopus",
        "-b:a", "16k",
        "-vbr", "on",
        "-compression_level", "10",
        "-ac", "1",
        "-ar", "16000",
        "-f", "ogg",
    ),
    OutputFormat.GIF_MP4: _H264_MP4 + ("-y",),
    OutputFormat.VIDEO_MP4: _H264_MP4 + ("-c:a", "aac", "-b:a", "128k", "-y"),
    OutputFormat.PNG: ("-frames:v", "1", "-c:v", "png", "-f", "image2pipe"),
}


def resolve_output_format(tag: str | OutputFormat | None, strict: bool = False) -> OutputFormat:
    """
    Resolve a declared output tag to a supported format.

    Args:
        tag: The declared tag, e.g. ``"mp3"``. Matching is case-insensitive.
        strict: Raise instead of falling back to the default audio profile.

    Returns:
        OutputFormat: The resolved format.

    Raises:
        UnsupportedFormatError: If the tag is unknown and ``strict`` is set.
    """
    if isinstance(tag, OutputFormat):
        return tag
    normalized = (tag or "").strip().lower()
    try:
        return OutputFormat(normalized)
    except ValueError:
        if strict:
            raise UnsupportedFormatError(f"Unsupported output format: {tag!r}")
        logger.warning(f"Unknown output format {tag!r}, using the default {DEFAULT_OUTPUT_FORMAT.value} profile")
        return DEFAULT_OUTPUT_FORMAT


def requires_seekable_output(output_format: OutputFormat) -> bool:
    return output_format in SEEKABLE_OUTPUT_FORMATS


def build_plan(input_format: str, output_format: OutputFormat) -> ExecutionPlan:
    """
    Build the execution plan for an (input, output) format pair.

    The input tag only names the staged input artifact; the argument set is
    fully determined by the output format.
    """
    template = FORMAT_TEMPLATES.get(output_format, FORMAT_TEMPLATES[DEFAULT_OUTPUT_FORMAT])
    if requires_seekable_output(output_format):
        args = ("-i", INPUT_PLACEHOLDER, *template, OUTPUT_PLACEHOLDER)
        io_mode = IOMode.TEMP_FILE
    else:
        args = ("-i", PIPE_INPUT, *template, PIPE_OUTPUT)
        io_mode = IOMode.PIPE
    return ExecutionPlan(args=args, io_mode=io_mode, output_format=output_format)


def dispatch(request: ConversionRequest) -> ExecutionPlan:
    """Validate the request payload and return its execution plan."""
    if not request.raw_bytes:
        raise InputAcquisitionError("Input payload is empty")
    plan = build_plan(request.input_format, request.output_format)
    logger.debug(
        f"Planned {request.input_format} -> {plan.output_format.value} conversion in {plan.io_mode.value} mode"
    )
    return plan
