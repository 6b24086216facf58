import logging
import math
import re

from transcoder_gateway.converter.errors import MetadataExtractionError

logger = logging.getLogger(__name__)

_TIME_MARKER = "time="
_TIMESTAMP_PATTERN = re.compile(r"(\d+):(\d+):(\d+(?:\.\d+)?)")


def extract_duration(diagnostic_text: str) -> int:
    """
    Read the output duration from the transcoder's progress output.

    Progress lines carry increasing ``time=HH:MM:SS.ms`` markers; the last one
    approximates the total output duration.

    Args:
        diagnostic_text (str): The transcoder's stderr.

    Returns:
        int: Whole seconds, fractional seconds truncated.

    Raises:
        MetadataExtractionError: If no marker is present or the last one cannot be parsed.
    """
    position = diagnostic_text.rfind(_TIME_MARKER)
    if position == -1:
        raise MetadataExtractionError("Duration not found in transcoder output", diagnostics=diagnostic_text)

    match = _TIMESTAMP_PATTERN.match(diagnostic_text, position + len(_TIME_MARKER))
    if not match:
        raise MetadataExtractionError("Malformed duration in transcoder output", diagnostics=diagnostic_text)

    hours, minutes, seconds = match.groups()
    duration = int(hours) * 3600 + int(minutes) * 60 + math.floor(float(seconds))
    logger.debug(f"Extracted duration of {duration}s")
    return duration
