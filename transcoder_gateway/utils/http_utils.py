import logging
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from transcoder_gateway.configs import settings

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    def __init__(self, status_code, message):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class TransientDownloadError(DownloadError):
    """A timeout or transport failure that may succeed when retried."""


def _declared_length(response: httpx.Response) -> int:
    """The Content-Length of a response, or 0 when it is missing or malformed."""
    try:
        return max(int(response.headers.get("content-length") or 0), 0)
    except ValueError:
        logger.warning(f"Ignoring invalid content-length header: {response.headers.get('content-length')!r}")
        return 0


def create_httpx_client(follow_redirects: bool = True, **kwargs) -> httpx.AsyncClient:
    """
    Create an HTTPX AsyncClient configured from the transport settings.

    Args:
        follow_redirects (bool): Whether to follow 3xx redirects automatically.
        **kwargs: Additional AsyncClient keyword arguments.

    Returns:
        httpx.AsyncClient: Configured client.
    """
    mounts = settings.transport_config.get_mounts()
    kwargs.setdefault("timeout", settings.fetch_timeout)
    kwargs.setdefault("headers", {"user-agent": settings.user_agent})
    return httpx.AsyncClient(mounts=mounts, follow_redirects=follow_redirects, **kwargs)


@retry(
    stop=stop_after_attempt(max(settings.fetch_retries, 1)),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(TransientDownloadError),
    reraise=True,
)
async def fetch_bytes_with_retry(
    client: httpx.AsyncClient, url: str, headers: Optional[dict] = None, max_bytes: Optional[int] = None
) -> bytes:
    """
    Download a URL into memory, retrying timeouts and transport failures.

    Args:
        client (httpx.AsyncClient): HTTP client to use for the request.
        url (str): Target URL.
        headers (dict): Extra request headers.
        max_bytes (int): Abort once the body grows beyond this size.

    Returns:
        bytes: The response body.

    Raises:
        DownloadError: If the download fails, after retries for transient errors.
    """
    try:
        async with client.stream("GET", url, headers=headers) as response:
            response.raise_for_status()
            declared_length = _declared_length(response)
            if max_bytes and declared_length > max_bytes:
                raise DownloadError(413, f"Remote content of {declared_length} bytes exceeds the {max_bytes} byte limit")

            logger.info(f"Downloading {url} (content-length: {declared_length or 'unknown'})")
            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if max_bytes and len(body) > max_bytes:
                    raise DownloadError(413, f"Remote content exceeds the {max_bytes} byte limit")
            logger.info(f"Downloaded {len(body)} bytes from {url}")
            return bytes(body)
    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error {e.response.status_code} while downloading {url}")
        raise DownloadError(e.response.status_code, f"HTTP error {e.response.status_code} while downloading {url}")
    except httpx.TimeoutException:
        logger.warning(f"Timeout while downloading {url}")
        raise TransientDownloadError(504, f"Timeout while downloading {url}")
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
        raise DownloadError(400, f"Invalid URL {url}: {e}")
    except httpx.TransportError as e:
        logger.warning(f"Transport error while downloading {url}: {e}")
        raise TransientDownloadError(502, f"Error downloading {url}: {e}")


async def download_bytes(
    url: str,
    headers: Optional[dict] = None,
    max_bytes: Optional[int] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """
    Fetch remote input into memory.

    Uses the given client, or a short-lived one built from the transport settings.
    """
    if client is not None:
        return await fetch_bytes_with_retry(client, url, headers, max_bytes)
    async with create_httpx_client() as owned_client:
        return await fetch_bytes_with_retry(owned_client, url, headers, max_bytes)
