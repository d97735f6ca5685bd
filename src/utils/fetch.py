# fetch.py
# Byte fetching over the shared aiohttp session, plus the content checks every candidate goes through

# Standard Library Imports
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

# Third-Party Imports
import aiohttp

# Local Imports
from extraconfig import DEFAULT_MAX_SIZE
from logger import get_logger
from utils.errors import FetchUrlError, ImageTooLarge, InvalidContentType

log = get_logger()

CHUNK_SIZE = 64 * 1024
PAGE_LIMIT = 2 * 1024 * 1024  # embed pages are html, no need to buffer more than this
REQUEST_TIMEOUT = 15  # seconds


def validate_content_type(content_type: Optional[str]) -> None:
    """Accept only image/* content, missing headers count as unknown."""
    if not (content_type or "unknown").lower().startswith("image/"):
        raise InvalidContentType(content_type)


def validate_size(size: int, limit: int) -> None:
    """Anything reaching the ceiling is refused, `limit - 1` is the largest accepted size."""
    if size >= limit:
        raise ImageTooLarge(size, limit)


class ByteFetcher:
    """
    Thin wrapper around HTTP GETs.
    Uses the bot's shared session when it is given and open, otherwise a throwaway
    session per request (same as the Cloudflare pinger used to do it).
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout: float = REQUEST_TIMEOUT):
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @asynccontextmanager
    async def _get(self, url: str) -> AsyncIterator[aiohttp.ClientResponse]:
        use_shared = self.session is not None and not self.session.closed
        session = self.session if use_shared else aiohttp.ClientSession()
        try:
            async with session.get(url, allow_redirects=True, timeout=self.timeout) as resp:
                if resp.status < 200 or resp.status >= 300:
                    log.warningtrace("GET %s returned %s", url, resp.status)
                    raise FetchUrlError(url, resp.status)
                yield resp
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log.warningtrace("GET %s failed: %s", url, e)
            raise FetchUrlError(url) from e
        finally:
            if not use_shared:
                await session.close()

    async def get_image(self, url: str, max_size: int = DEFAULT_MAX_SIZE) -> bytes:
        """
        Fetch an image, checking the content type first, then the declared length,
        then the streamed length so an oversized body is never fully buffered.
        """
        async with self._get(url) as resp:
            validate_content_type(resp.headers.get("Content-Type"))
            if resp.content_length is not None:
                validate_size(resp.content_length, max_size)

            buffer = bytearray()
            async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                buffer.extend(chunk)
                validate_size(len(buffer), max_size)

        log.trace("Fetched %s (%d bytes)", url, len(buffer))
        return bytes(buffer)

    async def get_text(self, url: str, limit: int = PAGE_LIMIT) -> str:
        """Fetch a page body as text, truncated to `limit` bytes."""
        async with self._get(url) as resp:
            buffer = bytearray()
            async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                buffer.extend(chunk)
                if len(buffer) >= limit:
                    del buffer[limit:]
                    break
            charset = resp.charset or "utf-8"

        try:
            return buffer.decode(charset, errors="ignore")
        except LookupError:
            return buffer.decode("utf-8", errors="ignore")
