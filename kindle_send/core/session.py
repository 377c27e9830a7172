import asyncio
import aiohttp
import socket
from contextlib import asynccontextmanager
from typing import Optional, Tuple, Union
from aiohttp.resolver import ThreadedResolver

from ..models import log, FetchError, EXTRACT_TIMEOUT, MAX_RETRIES, RETRY_DELAY

DEFAULT_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.5',
}

@asynccontextmanager
async def get_session():
    # Threaded DNS avoids pycares issues on some platforms; force IPv4
    connector = aiohttp.TCPConnector(
        resolver=ThreadedResolver(),
        ttl_dns_cache=300,
        family=socket.AF_INET
    )
    timeout = aiohttp.ClientTimeout(total=EXTRACT_TIMEOUT * 2)
    async with aiohttp.ClientSession(timeout=timeout, connector=connector, headers=DEFAULT_HEADERS) as session:
        yield session

async def fetch_bytes(session, url, response_type='bytes', timeout: Optional[float] = None) -> Tuple[Optional[Union[bytes, str]], int]:
    """Single GET. Returns (body, status); body is None for any non-200 status."""
    kwargs = {'timeout': aiohttp.ClientTimeout(total=timeout)} if timeout else {}
    async with session.get(url, allow_redirects=True, **kwargs) as response:
        if response.status != 200:
            return None, response.status
        if response_type == 'text':
            return await response.text(encoding='utf-8', errors='replace'), response.status
        return await response.read(), response.status

async def fetch_with_retry(
    session,
    url,
    response_type='bytes',
    max_retries: int = MAX_RETRIES,
    backoff: float = RETRY_DELAY,
    timeout: Optional[float] = None
):
    """GET with a fixed delay between attempts. Raises FetchError once attempts are exhausted."""
    last_reason = "no attempt made"
    last_status = 0
    for attempt in range(max_retries):
        try:
            data, status = await fetch_bytes(session, url, response_type, timeout)
            if data is not None:
                return data
            last_status = status
            last_reason = f"HTTP {status}"
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            last_reason = str(e) or e.__class__.__name__

        if attempt + 1 < max_retries:
            log.warning(f"Attempt {attempt + 1}/{max_retries} failed for {url}: {last_reason}. Retrying in {backoff}s.")
            await asyncio.sleep(backoff)

    log.warning(f"Can not get {url} after {max_retries} attempts: {last_reason}")
    raise FetchError(url, last_reason, last_status)
