"""
Tests for the Playwright executor with mocked browser objects.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core.domain_config import ScrapingConfig
from core.errors import BrowserFetchError
from crawler.browser_crawler import (
    BrowserCrawler, LAUNCH_ARGS, SCROLL_STEPS, is_spa_host, spa_request_allowed,
)

PAGE_HTML = "<html><body><h1>Engineer</h1></body></html>"
CONFIG = ScrapingConfig(service="browser", js_rendering=True, retries=1, timeout_ms=30000)


def make_page(goto_side_effect=None):
    page = MagicMock()
    page.url = "https://example.com/job/1?ref=final"
    page.set_default_timeout = MagicMock()
    page.route = AsyncMock()
    page.goto = AsyncMock(side_effect=goto_side_effect)
    page.wait_for_load_state = AsyncMock()
    page.wait_for_function = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.evaluate = AsyncMock()
    page.content = AsyncMock(return_value=PAGE_HTML)
    page.screenshot = AsyncMock()
    page.close = AsyncMock()
    return page


def make_crawler(page, dev_mode=False):
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.add_init_script = AsyncMock()
    context.close = AsyncMock()

    browser = MagicMock()
    browser.is_connected = MagicMock(return_value=True)
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    crawler = BrowserCrawler(headless=True, dev_mode=dev_mode)
    crawler.browser = browser
    return crawler, browser, context


@pytest.mark.asyncio
async def test_fetch_success_closes_context():
    page = make_page()
    crawler, browser, context = make_crawler(page)

    result = await crawler.fetch_html("https://example.com/job/1", CONFIG)

    assert result.html == PAGE_HTML
    assert result.debug["final_url"] == "https://example.com/job/1?ref=final"
    assert result.debug["html_length"] == len(PAGE_HTML)
    assert "screenshot" not in result.debug
    page.goto.assert_awaited_once_with("https://example.com/job/1", wait_until="networkidle", timeout=30000)
    assert context.add_init_script.await_count == 2
    page.close.assert_awaited_once()
    context.close.assert_awaited_once()
    assert crawler.active_contexts == 0

    # Scroll steps plus the return to the top
    assert page.evaluate.await_count == SCROLL_STEPS + 1
    page.screenshot.assert_not_awaited()


@pytest.mark.asyncio
async def test_context_options():
    page = make_page()
    crawler, browser, context = make_crawler(page)

    await crawler.fetch_html("https://example.com/job/1", CONFIG)

    kwargs = browser.new_context.await_args.kwargs
    assert kwargs["viewport"] == {"width": 1920, "height": 1080}
    assert kwargs["locale"] == "en-US"
    assert kwargs["timezone_id"] == "America/New_York"
    assert kwargs["extra_http_headers"]["Sec-Fetch-Mode"] == "navigate"


@pytest.mark.asyncio
async def test_timeout_raises_after_all_tries_and_cleans_up():
    page = make_page(goto_side_effect=PlaywrightTimeoutError("Timeout 30000ms exceeded"))
    crawler, browser, context = make_crawler(page)
    config = ScrapingConfig(service="browser", js_rendering=True, retries=2, timeout_ms=30000)

    with pytest.raises(BrowserFetchError) as exc_info:
        await crawler.fetch_html("https://example.com/job/1", config)

    assert browser.new_context.await_count == 2
    assert context.close.await_count == 2
    assert crawler.active_contexts == 0
    tries = exc_info.value.debug["tries"]
    assert len(tries) == 2
    assert tries[0]["error_name"] == "TimeoutError"


@pytest.mark.asyncio
async def test_zero_retries_still_tries_once():
    page = make_page(goto_side_effect=PlaywrightTimeoutError("Timeout"))
    crawler, browser, context = make_crawler(page)
    config = ScrapingConfig(service="browser", retries=0, timeout_ms=5000)

    with pytest.raises(BrowserFetchError):
        await crawler.fetch_html("https://example.com/job/1", config)

    assert browser.new_context.await_count == 1


@pytest.mark.asyncio
async def test_cancellation_propagates_and_cleans_up():
    page = make_page(goto_side_effect=asyncio.CancelledError())
    crawler, browser, context = make_crawler(page)

    with pytest.raises(asyncio.CancelledError):
        await crawler.fetch_html("https://example.com/job/1", CONFIG)

    context.close.assert_awaited_once()
    assert crawler.active_contexts == 0


@pytest.mark.asyncio
async def test_spa_readiness_waits_are_soft():
    page = make_page()
    page.wait_for_function = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout"))
    crawler, browser, context = make_crawler(page)

    result = await crawler.fetch_html("https://grabjobs.com/singapore/job/barista-123", CONFIG)

    assert result.html == PAGE_HTML
    assert result.debug["readiness"] == {
        "framework_root": False,
        "fetches_settled": False,
        "content": False,
        "body_text": False,
    }


@pytest.mark.asyncio
async def test_linkedin_waits_for_description():
    page = make_page()
    crawler, browser, context = make_crawler(page)

    result = await crawler.fetch_html("https://www.linkedin.com/jobs/view/3766565837", CONFIG)

    assert result.debug["readiness"] == {"description": True}
    page.wait_for_selector.assert_awaited_once()
    assert page.wait_for_selector.await_args.kwargs["state"] == "visible"


@pytest.mark.asyncio
async def test_dev_mode_takes_screenshot():
    page = make_page()
    crawler, browser, context = make_crawler(page, dev_mode=True)

    result = await crawler.fetch_html("https://example.com/job/1", CONFIG)

    page.screenshot.assert_awaited_once()
    assert result.debug["screenshot"].endswith(".png")


def make_route(resource_type, url):
    route = MagicMock()
    route.request.resource_type = resource_type
    route.request.url = url
    route.abort = AsyncMock()
    route.continue_ = AsyncMock()
    return route


@pytest.mark.asyncio
async def test_route_blocks_heavy_resources():
    crawler = BrowserCrawler(headless=True, dev_mode=False)

    image = make_route("image", "https://cdn.example.com/logo.png")
    await crawler._route_request(False, image)
    image.abort.assert_awaited_once()

    document = make_route("document", "https://example.com/job/1")
    await crawler._route_request(False, document)
    document.continue_.assert_awaited_once()


@pytest.mark.asyncio
async def test_route_spa_allowlist():
    crawler = BrowserCrawler(headless=True, dev_mode=False)

    script = make_route("script", "https://grabjobs.com/_next/static/app.js")
    await crawler._route_request(True, script)
    script.continue_.assert_awaited_once()

    font = make_route("font", "https://grabjobs.com/fonts/inter.woff2")
    await crawler._route_request(True, font)
    font.abort.assert_awaited_once()


def test_spa_helpers():
    assert is_spa_host("https://www.grabjobs.com/job/1")
    assert is_spa_host("https://jobcopilot.com/job/1")
    assert not is_spa_host("https://jobs.lever.co/acme/1")
    assert spa_request_allowed("xhr", "https://grabjobs.com/x")
    assert spa_request_allowed("other", "https://grabjobs.com/graphql")
    assert not spa_request_allowed("image", "https://grabjobs.com/a.png")


@pytest.mark.asyncio
async def test_browser_launched_once():
    playwright = MagicMock()
    browser = MagicMock()
    browser.is_connected = MagicMock(return_value=True)
    playwright.chromium.launch = AsyncMock(return_value=browser)

    with patch("crawler.browser_crawler.async_playwright") as factory:
        factory.return_value.start = AsyncMock(return_value=playwright)
        crawler = BrowserCrawler(headless=True, dev_mode=False)

        first, second = await asyncio.gather(crawler._get_browser(), crawler._get_browser())

    assert first is browser and second is browser
    playwright.chromium.launch.assert_awaited_once_with(headless=True, args=LAUNCH_ARGS)


@pytest.mark.asyncio
async def test_shutdown_is_idempotent():
    crawler, browser, context = make_crawler(make_page())
    playwright = MagicMock()
    playwright.stop = AsyncMock()
    crawler._playwright = playwright

    await crawler.shutdown()
    await crawler.shutdown()

    browser.close.assert_awaited_once()
    playwright.stop.assert_awaited_once()
    assert crawler.browser is None


@pytest.mark.asyncio
async def test_test_connection_reports_failure():
    crawler = BrowserCrawler(headless=True, dev_mode=False)

    with patch.object(crawler, "fetch_html", AsyncMock(side_effect=BrowserFetchError("no browser"))):
        assert await crawler.test_connection() is False

    with patch.object(crawler, "fetch_html", AsyncMock()):
        assert await crawler.test_connection() is True


def test_headless_from_environment(monkeypatch):
    monkeypatch.setenv("JOBLENS_HEADLESS", "false")
    monkeypatch.setenv("JOBLENS_ENV", "dev")
    crawler = BrowserCrawler()

    assert crawler.headless is False
    assert crawler.dev_mode is True
