"""
Browser-based fetcher using Playwright for JavaScript-heavy and bot-hostile sites.

One Chromium process is shared by the whole process and launched lazily.
Every fetch gets its own stealth context (fresh cookies, randomized user
agent) that is closed again before the fetch returns, whatever the outcome.
"""
import os
import time
import atexit
import random
import signal
import asyncio
import hashlib
import logging
import tempfile
import threading
from functools import partial
from typing import Any, Dict, Optional, Set
from playwright.async_api import (
    async_playwright, Browser, BrowserContext, Page, Playwright, Route,
    Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError,
)

from core.domain_config import ScrapingConfig, normalize_hostname
from core.errors import BrowserFetchError
from core.net import FetchResult

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-accelerated-2d-canvas',
    '--no-first-run',
    '--no-zygote',
    '--disable-gpu',
    '--disable-background-timer-throttling',
    '--disable-backgrounding-occluded-windows',
    '--disable-renderer-backgrounding',
]

USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0',
]

VIEWPORT = {'width': 1920, 'height': 1080}

CONTEXT_HEADERS = {
    'Accept-Language': 'en-US,en;q=0.9',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
    'Sec-Fetch-Dest': 'document',
    'Sec-Fetch-Mode': 'navigate',
    'Sec-Fetch-Site': 'none',
    'Sec-Fetch-User': '?1',
    'Cache-Control': 'max-age=0',
    'Upgrade-Insecure-Requests': '1',
}

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
delete window.cdc_adoQpoasnfa76pfcZLmcfl_Array;
delete window.cdc_adoQpoasnfa76pfcZLmcfl_Promise;
delete window.cdc_adoQpoasnfa76pfcZLmcfl_Symbol;
if (!window.chrome) {
  window.chrome = { runtime: {}, loadTimes: function() {}, csi: function() {}, app: {} };
}
"""

# Counts fetch() calls started vs settled so SPA data loading can be awaited
FETCH_TRACKER_SCRIPT = """
(() => {
  if (window.__joblensFetches || !window.fetch) return;
  const counter = { started: 0, settled: 0 };
  window.__joblensFetches = counter;
  const originalFetch = window.fetch;
  window.fetch = function(...args) {
    counter.started += 1;
    return originalFetch.apply(this, args).finally(() => { counter.settled += 1; });
  };
})();
"""

BLOCKED_RESOURCE_TYPES = {'image', 'font', 'media'}

SPA_HOSTS = ('grabjobs.com', 'jobcopilot.com', 'wellfound.com')
SPA_ALLOWED_RESOURCE_TYPES = {'document', 'script', 'stylesheet', 'xhr', 'fetch'}
SPA_ALLOWED_URL_PATTERNS = ('/api/', 'graphql', '_next/', '.js', '.css')
SPA_ROOT_SELECTORS = ['#__next', '#root', '#app']
SPA_CONTENT_SELECTORS = [
    'h1',
    '[class*="job-title"]',
    '[class*="JobTitle"]',
    '[class*="company"]',
    '[class*="description"]',
    '[data-testid="job-description"]',
]

LINKEDIN_READY_SELECTOR = '.jobs-description, .job-details, [class*="description"]'

ROOT_READY_TIMEOUT_MS = 10000
FETCH_SETTLE_TIMEOUT_MS = 8000
CONTENT_READY_TIMEOUT_MS = 15000
BODY_TEXT_TIMEOUT_MS = 5000
LINKEDIN_READY_TIMEOUT_MS = 10000
MIN_CONTENT_CHARS = 20
MIN_BODY_CHARS = 500

SCROLL_STEPS = 5
SCROLL_STEP_PX = 400
SCROLL_PAUSE_MS = 200
HUMAN_DELAY_RANGE_MS = (500, 2500)

ROOT_READY_JS = """
(selectors) => selectors.some(s => {
  const el = document.querySelector(s);
  return !!el && el.children.length > 0;
})
"""
FETCH_SETTLED_JS = """
() => !window.__joblensFetches || window.__joblensFetches.started === window.__joblensFetches.settled
"""
CONTENT_READY_JS = """
([selectors, minChars]) => selectors.some(s =>
  Array.from(document.querySelectorAll(s)).some(el => (el.innerText || '').trim().length > minChars))
"""
BODY_TEXT_JS = """
(minChars) => !!document.body && document.body.innerText.trim().length > minChars
"""

# Global crawler instance
_crawler: Optional['BrowserCrawler'] = None


def is_spa_host(url: str) -> bool:
    host = normalize_hostname(url) or ''
    return any(h in host for h in SPA_HOSTS)


def spa_request_allowed(resource_type: str, request_url: str) -> bool:
    """Requests an SPA needs to render its content; these are never blocked."""
    if resource_type in SPA_ALLOWED_RESOURCE_TYPES:
        return True
    lowered = request_url.lower()
    return any(pattern in lowered for pattern in SPA_ALLOWED_URL_PATTERNS)


class BrowserCrawler:
    """Shared headless Chromium with one isolated stealth context per fetch"""

    def __init__(self, headless: Optional[bool] = None, dev_mode: Optional[bool] = None):
        if headless is None:
            headless = os.getenv("JOBLENS_HEADLESS", "true").lower() != "false"
        if dev_mode is None:
            dev_mode = os.getenv("JOBLENS_ENV", "production").lower() == "dev"
        self.headless = headless
        self.dev_mode = dev_mode
        self.browser: Optional[Browser] = None
        self._playwright: Optional[Playwright] = None
        self._contexts: Set[BrowserContext] = set()
        self._launch_lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._hooks_installed = False
        self._shutdown_task: Optional[asyncio.Task] = None

    @property
    def active_contexts(self) -> int:
        return len(self._contexts)

    async def _get_browser(self) -> Browser:
        """Launch Chromium on first use; later calls reuse it."""
        if self.browser is not None and self.browser.is_connected():
            return self.browser

        async with self._launch_lock:
            if self.browser is None or not self.browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                logger.info(f"[browser] Launching Chromium (headless={self.headless})")
                self.browser = await self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
                self._loop = asyncio.get_running_loop()
        return self.browser

    async def _new_context(self) -> BrowserContext:
        browser = await self._get_browser()
        context = await browser.new_context(
            user_agent=random.choice(USER_AGENTS),
            viewport=VIEWPORT,
            locale='en-US',
            timezone_id='America/New_York',
            extra_http_headers=CONTEXT_HEADERS,
        )
        self._contexts.add(context)
        await context.add_init_script(STEALTH_SCRIPT)
        await context.add_init_script(FETCH_TRACKER_SCRIPT)
        return context

    async def _route_request(self, spa: bool, route: Route):
        request = route.request
        if spa and spa_request_allowed(request.resource_type, request.url):
            await route.continue_()
        elif request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    async def fetch_html(self, url: str, config: ScrapingConfig) -> FetchResult:
        """
        Render a page and return its final DOM.

        Tries up to max(1, config.retries) times, each in a fresh context.

        Raises:
            BrowserFetchError: every try failed; debug carries each try's details
        """
        tries = max(1, config.retries)
        attempts_debug = []
        last_error: Optional[BrowserFetchError] = None

        for try_number in range(1, tries + 1):
            try:
                result = await self._render(url, config)
                result.debug['try'] = try_number
                result.debug['previous_tries'] = attempts_debug
                return result
            except BrowserFetchError as e:
                attempts_debug.append(e.debug)
                last_error = e
                logger.warning(f"[browser] Try {try_number}/{tries} failed for {url}: {e}")

        raise BrowserFetchError(
            f"Browser fetch failed after {tries} tries: {last_error}",
            debug={'url': url, 'tries': attempts_debug},
        )

    async def _render(self, url: str, config: ScrapingConfig) -> FetchResult:
        debug: Dict[str, Any] = {'url': url, 'timeout_ms': config.timeout_ms}
        start_time = time.time()
        context: Optional[BrowserContext] = None
        page: Optional[Page] = None
        spa = is_spa_host(url)

        try:
            context = await self._new_context()
            page = await context.new_page()
            page.set_default_timeout(config.timeout_ms)
            await page.route('**/*', partial(self._route_request, spa))

            navigation_start = time.time()
            await page.goto(url, wait_until='networkidle', timeout=config.timeout_ms)
            debug['navigation_ms'] = int((time.time() - navigation_start) * 1000)
            await page.wait_for_load_state('domcontentloaded')

            debug['readiness'] = await self._wait_until_ready(page, url, spa)
            await self._scroll_page(page)

            delay = random.randint(*HUMAN_DELAY_RANGE_MS)
            debug['human_delay_ms'] = delay
            await page.wait_for_timeout(delay)

            debug['final_url'] = page.url
            html = await page.content()
            debug['html_length'] = len(html)

            if self.dev_mode:
                debug['screenshot'] = await self._screenshot(page, url, 'page')

            logger.info(f"[browser] Rendered {url} ({len(html)} chars, {debug['navigation_ms']}ms navigation)")
            return FetchResult(html=html, debug=debug)

        except PlaywrightTimeoutError as e:
            debug['error'] = str(e)
            debug['error_name'] = 'TimeoutError'
            logger.error(f"[browser] Timeout rendering {url}: {e}")
            if self.dev_mode and page is not None:
                debug['screenshot'] = await self._screenshot(page, url, 'error')
            raise BrowserFetchError(f"Timeout rendering {url}: {e}", debug=debug) from e
        except PlaywrightError as e:
            debug['error'] = str(e)
            debug['error_name'] = type(e).__name__
            logger.error(f"[browser] Browser fetch failed for {url}: {e}")
            if self.dev_mode and page is not None:
                debug['screenshot'] = await self._screenshot(page, url, 'error')
            raise BrowserFetchError(f"Browser fetch failed for {url}: {e}", debug=debug) from e
        finally:
            await self._close_context(page, context)
            debug['total_ms'] = int((time.time() - start_time) * 1000)

    async def _soft_wait(self, page: Page, expression: str, arg: Any, timeout_ms: int) -> bool:
        """wait_for_function that reports a timeout instead of raising it."""
        try:
            await page.wait_for_function(expression, arg=arg, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False

    async def _wait_until_ready(self, page: Page, url: str, spa: bool) -> Dict[str, bool]:
        """Site-specific readiness checks. None of them fail the fetch."""
        readiness: Dict[str, bool] = {}

        if spa:
            readiness['framework_root'] = await self._soft_wait(
                page, ROOT_READY_JS, SPA_ROOT_SELECTORS, ROOT_READY_TIMEOUT_MS
            )
            readiness['fetches_settled'] = await self._soft_wait(
                page, FETCH_SETTLED_JS, None, FETCH_SETTLE_TIMEOUT_MS
            )
            readiness['content'] = await self._soft_wait(
                page, CONTENT_READY_JS, [SPA_CONTENT_SELECTORS, MIN_CONTENT_CHARS], CONTENT_READY_TIMEOUT_MS
            )
            if not readiness['content']:
                readiness['body_text'] = await self._soft_wait(
                    page, BODY_TEXT_JS, MIN_BODY_CHARS, BODY_TEXT_TIMEOUT_MS
                )

        elif 'linkedin.com' in (normalize_hostname(url) or ''):
            try:
                await page.wait_for_selector(
                    LINKEDIN_READY_SELECTOR, timeout=LINKEDIN_READY_TIMEOUT_MS, state='visible'
                )
                readiness['description'] = True
            except PlaywrightTimeoutError:
                readiness['description'] = False
            await page.evaluate("() => { window.scrollBy(0, 500); window.scrollBy(0, -250); }")
            await page.wait_for_timeout(1500)

        return readiness

    async def _scroll_page(self, page: Page):
        """Trigger lazy-loaded content, then return to the top."""
        for _ in range(SCROLL_STEPS):
            await page.evaluate("(px) => window.scrollBy({ top: px, behavior: 'smooth' })", SCROLL_STEP_PX)
            await page.wait_for_timeout(SCROLL_PAUSE_MS)
        await page.evaluate("() => window.scrollTo(0, 0)")

    async def _screenshot(self, page: Page, url: str, kind: str) -> Optional[str]:
        """Save a debugging screenshot (dev only); returns its path."""
        digest = hashlib.sha256(url.encode()).hexdigest()[:8]
        path = os.path.join(tempfile.gettempdir(), f"browser_{kind}_{digest}.png")
        try:
            await page.screenshot(path=path, full_page=False)
            logger.info(f"[browser] Screenshot saved: {path}")
            return path
        except PlaywrightError as e:
            logger.debug(f"[browser] Failed to capture screenshot: {e}")
            return None

    async def _close_context(self, page: Optional[Page], context: Optional[BrowserContext]):
        try:
            if page is not None:
                await page.close()
        except PlaywrightError as e:
            logger.warning(f"[browser] Error closing page: {e}")
        if context is not None:
            self._contexts.discard(context)
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning(f"[browser] Error closing context: {e}")

    async def test_connection(self) -> bool:
        """Render a tiny page to check the browser works."""
        probe = ScrapingConfig(service='browser', js_rendering=True, retries=1, timeout_ms=10000)
        try:
            await self.fetch_html('https://httpbin.org/html', probe)
            return True
        except BrowserFetchError as e:
            logger.warning(f"[browser] Connection test failed: {e}")
            return False

    async def shutdown(self):
        """Close open contexts, the browser and the driver. Safe to call repeatedly."""
        for context in list(self._contexts):
            self._contexts.discard(context)
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning(f"[browser] Error closing context during shutdown: {e}")

        browser, self.browser = self.browser, None
        if browser is not None:
            try:
                await browser.close()
                logger.info("[browser] Browser closed")
            except PlaywrightError as e:
                logger.warning(f"[browser] Error closing browser: {e}")

        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            await playwright.stop()

    def install_shutdown_hooks(self):
        """
        Close the browser on SIGINT/SIGTERM and at interpreter exit.

        The previous signal handler is restored and the signal re-raised once
        the browser is closed, so the host's own shutdown still runs.
        """
        if self._hooks_installed:
            return
        if threading.current_thread() is threading.main_thread():
            for sig in (signal.SIGINT, signal.SIGTERM):
                previous = signal.getsignal(sig)
                signal.signal(sig, partial(self._handle_signal, previous))
        else:
            logger.debug("[browser] Not on the main thread; relying on atexit and explicit shutdown")
        atexit.register(self._close_at_exit)
        self._hooks_installed = True

    def _handle_signal(self, previous, signum, frame):
        logger.info(f"[browser] Received signal {signum}, closing browser")
        signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            self._close_at_exit()
            signal.raise_signal(signum)
            return

        self._shutdown_task = loop.create_task(self.shutdown())
        self._shutdown_task.add_done_callback(lambda _task: signal.raise_signal(signum))

    def _close_at_exit(self):
        if self.browser is None and self._playwright is None:
            return
        loop = self._loop
        if loop is not None and not loop.is_closed() and not loop.is_running():
            loop.run_until_complete(self.shutdown())
        else:
            logger.warning("[browser] Browser still open at exit; leaving it to the driver teardown")


def get_browser_crawler() -> BrowserCrawler:
    """Get or create the global browser crawler"""
    global _crawler
    if _crawler is None:
        _crawler = BrowserCrawler()
    return _crawler
