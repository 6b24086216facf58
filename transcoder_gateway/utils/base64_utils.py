import base64
import binascii
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

_DATA_URI_PATTERN = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)
_WHITESPACE_PATTERN = re.compile(r"\s+")


def strip_data_uri(data: str) -> str:
    """
    Remove a ``data:<mime>;base64,`` prefix if present.

    Args:
        data (str): The raw field value.

    Returns:
        str: The bare base64 text.
    """
    return _DATA_URI_PATTERN.sub("", data, count=1)


def decode_base64_payload(data: str) -> Optional[bytes]:
    """
    Decode a base64 encoded media payload.

    Accepts the standard and URL-safe alphabets, embedded whitespace,
    missing padding and data URIs.

    Args:
        data (str): The base64 text.

    Returns:
        Optional[bytes]: The decoded bytes, None if decoding fails.
    """
    encoded = _WHITESPACE_PATTERN.sub("", strip_data_uri(data.strip()))
    encoded = encoded.replace("-", "+").replace("_", "/")

    missing_padding = len(encoded) % 4
    if missing_padding:
        encoded += "=" * (4 - missing_padding)

    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.debug(f"Failed to decode base64 payload '{data[:50]}...': {e}")
        return None


def encode_payload(data: bytes) -> str:
    """Encode bytes with the standard base64 alphabet for JSON transport."""
    return base64.b64encode(data).decode("ascii")
