"""
HTTP fetch executor with rotating user agents, site header profiles,
retries with backoff and a read-through proxy fallback for 403 responses.
"""
import os
import time
import random
import asyncio
import logging
import ipaddress
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import urlparse
import httpx
from tenacity import (
    AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_incrementing,
)

from core.errors import FetchHttpError, FetchNetworkError, FetchTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 25.0
MAX_RETRIES = 2
RETRY_BACKOFF_SECONDS = 2.0
PRE_DELAY_RANGE = (0.5, 1.5)
MAX_HTML_CHARS = 2_000_000
PREVIEW_CHARS = 500
DEFAULT_READER_URL = "https://r.jina.ai/"

USER_AGENTS = [
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:120.0) Gecko/20100101 Firefox/120.0',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1.2 Safari/605.1.15',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0',
]

DEFAULT_HEADERS = {
    'Accept-Language': 'en-US,en;q=0.9',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
    'Accept-Encoding': 'gzip, deflate',
    'Cache-Control': 'no-cache',
    'Pragma': 'no-cache',
}

NAVIGATION_HEADERS = {
    'Sec-Fetch-Site': 'cross-site',
    'Sec-Fetch-Mode': 'navigate',
    'Sec-Fetch-Dest': 'document',
    'Sec-Fetch-User': '?1',
    'Upgrade-Insecure-Requests': '1',
}

BLOCK_MARKERS = ('blocked', 'captcha', 'robot', 'forbidden')
NOT_FOUND_MARKERS = ('404', 'not found', 'page does not exist')

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class FetchResult:
    """HTML returned by an executor plus the diagnostics collected while fetching it."""
    html: str
    debug: Dict[str, Any] = field(default_factory=dict)


def is_valid_http_url(url: str) -> bool:
    """Absolute http(s) URL with a hostname that is not an IP literal."""
    try:
        parsed = urlparse(url)
    except (ValueError, TypeError):
        return False
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        return False
    try:
        ipaddress.ip_address(parsed.hostname)
        return False
    except ValueError:
        return True


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def site_headers(host: str) -> Tuple[Dict[str, str], Optional[str]]:
    """Extra headers that make a request look like organic navigation to the site."""
    if 'linkedin.com' in host:
        headers = {'Referer': 'https://www.google.com/'}
        headers.update(NAVIGATION_HEADERS)
        return headers, 'LinkedIn'

    if 'indeed.com' in host:
        headers = {'Referer': random.choice(['https://www.google.com/', 'https://www.indeed.com/'])}
        headers.update(NAVIGATION_HEADERS)
        headers.update({
            'DNT': '1',
            'Connection': 'keep-alive',
            'Sec-CH-UA': '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
            'Sec-CH-UA-Mobile': '?0',
            'Sec-CH-UA-Platform': random.choice(['"macOS"', '"Windows"']),
        })
        return headers, 'Indeed Enhanced'

    if 'wellfound.com' in host or 'angel.co' in host:
        return {'Referer': 'https://www.google.com/'}, 'Wellfound'

    return {}, None


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, (FetchTimeout, FetchNetworkError)):
        return True
    if isinstance(error, FetchHttpError):
        return error.status == 429 or error.status >= 500
    return False


def scan_markers(text: str, debug: Dict[str, Any]):
    """Record block and not-found markers. Informational only."""
    lowered = text.lower()
    block_keywords = [k for k in BLOCK_MARKERS if k in lowered]
    if block_keywords:
        debug['possible_block'] = True
        debug['block_keywords'] = block_keywords
    if any(k in lowered for k in NOT_FOUND_MARKERS):
        debug['possible_404'] = True


def cap_html(text: str, debug: Dict[str, Any]) -> str:
    debug['html_length'] = len(text)
    debug['html_preview'] = text[:PREVIEW_CHARS]
    if len(text) > MAX_HTML_CHARS:
        debug['html_truncated'] = True
        debug['original_length'] = len(text)
        return text[:MAX_HTML_CHARS]
    return text


class HTTPFetcher:
    """Plain HTTP executor: one GET with retries, plus the 403 reader fallback"""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        reader_url: Optional[str] = None,
        sleep: Optional[Sleep] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        pre_delay: bool = True,
    ):
        # httpx limits each phase separately; the deadline caps the whole request
        self.timeout = httpx.Timeout(timeout)
        self.deadline = timeout
        self.max_retries = max_retries
        self.reader_url = reader_url or os.getenv("JOBLENS_READER_PROXY_URL", DEFAULT_READER_URL)
        if not self.reader_url.endswith('/'):
            self.reader_url += '/'
        self._sleep = sleep or asyncio.sleep
        self._transport = transport
        self.pre_delay = pre_delay

    def _get_headers(self, url: str) -> Tuple[Dict[str, str], Optional[str]]:
        """Build request headers: baseline, random UA, then the site profile"""
        headers = dict(DEFAULT_HEADERS)
        headers['User-Agent'] = random_user_agent()
        extra, profile = site_headers((urlparse(url).hostname or '').lower())
        headers.update(extra)
        return headers, profile

    def reader_url_for(self, url: str) -> str:
        """Reader proxy URL: base + http://host/path?query"""
        parsed = urlparse(url)
        query = f"?{parsed.query}" if parsed.query else ''
        return f"{self.reader_url}http://{parsed.hostname}{parsed.path}{query}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, follow_redirects=True, transport=self._transport)

    async def fetch_html(self, url: str) -> FetchResult:
        """
        Fetch a page as text.

        Timeouts, network errors, 429 and 5xx are retried with a 2s, 4s, ...
        backoff. A 403 triggers a single request through the reader proxy.

        Raises:
            FetchTimeout, FetchNetworkError, FetchHttpError: after recovery failed
        """
        debug: Dict[str, Any] = {'url': url, 'tries': []}

        if self.pre_delay:
            delay = random.uniform(*PRE_DELAY_RANGE)
            debug['pre_delay_ms'] = int(delay * 1000)
            await self._sleep(delay)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_incrementing(start=RETRY_BACKOFF_SECONDS, increment=RETRY_BACKOFF_SECONDS),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        )

        async with self._client() as client:
            async for attempt in retrying:
                with attempt:
                    text = await self._fetch_once(client, url, debug)

        html = cap_html(text, debug)
        scan_markers(html, debug)
        logger.info(f"[net] GET {url} ok ({debug['html_length']} chars, {len(debug['tries'])} tries)")
        return FetchResult(html=html, debug=debug)

    async def _fetch_once(self, client: httpx.AsyncClient, url: str, debug: Dict[str, Any]) -> str:
        headers, profile = self._get_headers(url)
        if profile:
            debug['header_profile'] = profile
        try_info: Dict[str, Any] = {'attempt': len(debug['tries']) + 1, 'user_agent': headers['User-Agent']}
        debug['tries'].append(try_info)

        start_time = time.time()
        try:
            response = await asyncio.wait_for(client.get(url, headers=headers), self.deadline)
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            reason = str(e) or f"no complete response within {self.deadline}s"
            try_info['error'] = f"timeout: {reason}"
            logger.warning(f"[net] Timeout fetching {url}: {reason}")
            raise FetchTimeout(f"Timed out fetching {url}", debug=debug) from e
        except httpx.TransportError as e:
            try_info['error'] = f"{type(e).__name__}: {e}"
            logger.warning(f"[net] Network error fetching {url}: {e}")
            raise FetchNetworkError(f"Network error fetching {url}: {e}", debug=debug) from e
        finally:
            try_info['duration_ms'] = int((time.time() - start_time) * 1000)

        try_info['status'] = response.status_code
        try_info['final_url'] = str(response.url)

        if response.status_code == 403:
            text = await self._reader_fallback(client, url, headers['User-Agent'], debug)
            if text is not None:
                return text

        if response.status_code >= 400:
            try_info['error'] = f"HTTP {response.status_code}: {response.reason_phrase}"
            logger.warning(f"[net] GET {url} returned {response.status_code}")
            raise FetchHttpError(
                response.status_code,
                f"Failed to fetch ({response.status_code} {response.reason_phrase})",
                debug=debug,
            )

        return response.text

    async def _reader_fallback(self, client: httpx.AsyncClient, url: str, user_agent: str,
                               debug: Dict[str, Any]) -> Optional[str]:
        """One request through the reader proxy; None if it did not succeed."""
        if debug.get('reader_url'):
            return None

        reader_url = self.reader_url_for(url)
        debug['reader_url'] = reader_url
        start_time = time.time()
        try:
            response = await asyncio.wait_for(
                client.get(reader_url, headers={'User-Agent': user_agent}, timeout=self.timeout),
                self.deadline,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            debug['reader_error'] = f"{type(e).__name__}: {e}"
            logger.info(f"[net] Reader fallback failed for {url}: {e}")
            return None
        finally:
            debug['reader_duration_ms'] = int((time.time() - start_time) * 1000)

        debug['reader_status'] = response.status_code
        if response.status_code >= 400:
            logger.info(f"[net] Reader fallback for {url} returned {response.status_code}")
            return None

        debug['reader_used'] = True
        logger.info(f"[net] 403 for {url}, served through reader proxy")
        return response.text

