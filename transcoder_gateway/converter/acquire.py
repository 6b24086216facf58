import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from starlette.datastructures import UploadFile

from transcoder_gateway.converter.errors import InputAcquisitionError
from transcoder_gateway.utils.base64_utils import decode_base64_payload
from transcoder_gateway.utils.http_utils import DownloadError, download_bytes

logger = logging.getLogger(__name__)

_UPLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass
class InputSources:
    """The input channels a request may carry. At most one is used."""

    upload: Optional[UploadFile] = None
    base64_data: Optional[str] = None
    url: Optional[str] = None

    @property
    def has_any(self) -> bool:
        return self.upload is not None or bool(self.base64_data) or bool(self.url)


class InputAcquirer:
    """
    Resolve one input channel into an in-memory payload.

    Channels are tried in the order upload, base64, URL. With ``prefer_url``
    the URL is tried first.
    """

    def __init__(self, max_bytes: Optional[int] = None, client: Optional[httpx.AsyncClient] = None):
        self.max_bytes = max_bytes
        self.client = client

    async def acquire(self, sources: InputSources, prefer_url: bool = False) -> bytes:
        if prefer_url and sources.url:
            return await self._fetch(sources.url)
        if sources.upload is not None:
            return await self._read_upload(sources.upload)
        if sources.base64_data:
            return self._decode(sources.base64_data)
        if sources.url:
            return await self._fetch(sources.url)
        raise InputAcquisitionError("No file, base64 or URL provided")

    async def _read_upload(self, upload: UploadFile) -> bytes:
        body = bytearray()
        while True:
            chunk = await upload.read(_UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            body.extend(chunk)
            self._check_size(len(body))
        logger.info(f"Read {len(body)} bytes from upload {upload.filename!r}")
        return bytes(body)

    def _decode(self, base64_data: str) -> bytes:
        payload = decode_base64_payload(base64_data)
        if payload is None:
            raise InputAcquisitionError("Invalid base64 data")
        self._check_size(len(payload))
        logger.info(f"Decoded {len(payload)} bytes from base64 field")
        return payload

    async def _fetch(self, url: str) -> bytes:
        logger.info(f"Fetching input from {url}")
        try:
            return await download_bytes(url, max_bytes=self.max_bytes, client=self.client)
        except DownloadError as e:
            # 4xx passes through, anything else is a bad gateway
            status_code = e.status_code if 400 <= e.status_code < 500 else 502
            raise InputAcquisitionError(f"Failed to fetch input: {e.message}", status_code=status_code) from e

    def _check_size(self, size: int) -> None:
        if self.max_bytes and size > self.max_bytes:
            raise InputAcquisitionError(f"Input exceeds the {self.max_bytes} byte limit", status_code=413)
