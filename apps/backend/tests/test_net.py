"""
Tests for the HTTP fetch executor. Requests go to httpx.MockTransport and
sleeps are recorded instead of awaited.
"""

import time
import asyncio
import httpx
import pytest
from core.errors import FetchHttpError, FetchNetworkError, FetchTimeout
from core.net import (
    HTTPFetcher, MAX_HTML_CHARS, USER_AGENTS, is_valid_http_url, scan_markers, site_headers,
)

READER = "https://reader.test/"
JOB_HTML = "<html><body><h1>Python Developer</h1></body></html>"


def make_fetcher(handler, sleeps, pre_delay=False, **kwargs):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return HTTPFetcher(
        reader_url=READER,
        sleep=fake_sleep,
        transport=httpx.MockTransport(handler) if handler else None,
        pre_delay=pre_delay,
        **kwargs,
    )


async def slow_body(chunks=10, pause=0.1):
    for _ in range(chunks):
        await asyncio.sleep(pause)
        yield b"x"


@pytest.mark.asyncio
async def test_successful_fetch():
    sleeps = []
    fetcher = make_fetcher(lambda request: httpx.Response(200, text=JOB_HTML), sleeps)

    result = await fetcher.fetch_html("https://jobs.example.com/1")

    assert result.html == JOB_HTML
    assert result.debug["html_length"] == len(JOB_HTML)
    assert result.debug["tries"][0]["status"] == 200
    assert sleeps == []


@pytest.mark.asyncio
async def test_503_retried_with_backoff():
    calls = []
    sleeps = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(503, text="Service Unavailable")

    fetcher = make_fetcher(handler, sleeps)

    with pytest.raises(FetchHttpError) as exc_info:
        await fetcher.fetch_html("https://jobs.example.com/1")

    assert exc_info.value.status == 503
    assert len(calls) == 3
    assert sleeps == [2.0, 4.0]
    assert len(exc_info.value.debug["tries"]) == 3


@pytest.mark.asyncio
async def test_retry_then_success():
    responses = [httpx.Response(429), httpx.Response(200, text=JOB_HTML)]
    sleeps = []
    fetcher = make_fetcher(lambda request: responses.pop(0), sleeps)

    result = await fetcher.fetch_html("https://jobs.example.com/1")

    assert result.html == JOB_HTML
    assert sleeps == [2.0]


@pytest.mark.asyncio
async def test_404_not_retried():
    calls = []
    sleeps = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(404, text="Not Found")

    fetcher = make_fetcher(handler, sleeps)

    with pytest.raises(FetchHttpError) as exc_info:
        await fetcher.fetch_html("https://jobs.example.com/gone")

    assert exc_info.value.status == 404
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_timeout_retried_then_raised():
    sleeps = []

    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    fetcher = make_fetcher(handler, sleeps)

    with pytest.raises(FetchTimeout):
        await fetcher.fetch_html("https://jobs.example.com/1")

    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_connection_error_maps_to_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    fetcher = make_fetcher(handler, [])

    with pytest.raises(FetchNetworkError):
        await fetcher.fetch_html("https://jobs.example.com/1")


@pytest.mark.asyncio
async def test_403_served_through_reader_once():
    calls = []
    sleeps = []

    def handler(request):
        calls.append(str(request.url))
        if request.url.host == "reader.test":
            return httpx.Response(200, text=JOB_HTML)
        return httpx.Response(403, text="Forbidden")

    fetcher = make_fetcher(handler, sleeps)

    result = await fetcher.fetch_html("https://www.indeed.com/viewjob?jk=abc123")

    assert result.html == JOB_HTML
    assert result.debug["reader_used"] is True
    assert result.debug["reader_url"] == "https://reader.test/http://www.indeed.com/viewjob?jk=abc123"
    assert sum(1 for c in calls if "reader.test" in c) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_403_with_failing_reader_raises():
    calls = []

    def handler(request):
        calls.append(str(request.url))
        if request.url.host == "reader.test":
            return httpx.Response(502)
        return httpx.Response(403)

    fetcher = make_fetcher(handler, [])

    with pytest.raises(FetchHttpError) as exc_info:
        await fetcher.fetch_html("https://www.glassdoor.com/job/1")

    assert exc_info.value.status == 403
    assert exc_info.value.debug["reader_status"] == 502
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_large_body_truncated():
    body = "x" * (MAX_HTML_CHARS + 10)
    fetcher = make_fetcher(lambda request: httpx.Response(200, text=body), [])

    result = await fetcher.fetch_html("https://jobs.example.com/huge")

    assert len(result.html) == MAX_HTML_CHARS
    assert result.debug["html_truncated"] is True
    assert result.debug["original_length"] == MAX_HTML_CHARS + 10


@pytest.mark.asyncio
async def test_site_headers_applied():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, text=JOB_HTML)

    fetcher = make_fetcher(handler, [])
    result = await fetcher.fetch_html("https://www.indeed.com/viewjob?jk=abc123")

    assert result.debug["header_profile"] == "Indeed Enhanced"
    assert seen["user-agent"] in USER_AGENTS
    assert "sec-ch-ua" in seen
    assert seen["sec-fetch-mode"] == "navigate"


def test_site_headers_profiles():
    assert site_headers("www.linkedin.com")[1] == "LinkedIn"
    assert site_headers("wellfound.com")[1] == "Wellfound"
    assert site_headers("careers.example.org") == ({}, None)


def test_is_valid_http_url():
    assert is_valid_http_url("https://jobs.lever.co/acme/123")
    assert is_valid_http_url("http://example.com")
    assert not is_valid_http_url("ftp://example.com/file")
    assert not is_valid_http_url("http://127.0.0.1/admin")
    assert not is_valid_http_url("http://[::1]/")
    assert not is_valid_http_url("not a url")
    assert not is_valid_http_url("")


def test_scan_markers_is_informational():
    debug = {}
    scan_markers("<p>Please prove you are not a robot</p>", debug)
    assert debug["possible_block"] is True
    assert debug["block_keywords"] == ["robot"]

    debug = {}
    scan_markers("<h1>Page not found</h1>", debug)
    assert debug["possible_404"] is True
    assert "possible_block" not in debug


@pytest.mark.asyncio
async def test_pre_delay_only_before_first_try():
    responses = [httpx.Response(503), httpx.Response(200, text=JOB_HTML)]
    sleeps = []
    fetcher = make_fetcher(lambda request: responses.pop(0), sleeps, pre_delay=True)

    result = await fetcher.fetch_html("https://jobs.example.com/1")

    assert result.html == JOB_HTML
    assert len(sleeps) == 2
    assert 0.5 <= sleeps[0] <= 1.5
    assert sleeps[1] == 2.0
    assert result.debug["pre_delay_ms"] == int(sleeps[0] * 1000)


@pytest.mark.asyncio
async def test_trickling_server_hits_overall_deadline():
    async def trickle(reader, writer):
        try:
            await reader.readuntil(b"\r\n\r\n")
            writer.write(b"HTTP/1.1 200 OK\r\nContent-Type: text/html\r\nContent-Length: 12\r\n\r\n")
            await writer.drain()
            for _ in range(12):
                await asyncio.sleep(0.2)
                writer.write(b"x")
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(trickle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    fetcher = make_fetcher(None, [], timeout=0.5, max_retries=0)

    try:
        started = time.monotonic()
        with pytest.raises(FetchTimeout) as exc_info:
            await fetcher.fetch_html(f"http://127.0.0.1:{port}/job")
        elapsed = time.monotonic() - started
    finally:
        server.close()

    # Each 0.2s gap is under the per-read timeout; only the overall deadline fires
    assert elapsed < 2.0
    assert exc_info.value.debug["tries"][0]["error"].startswith("timeout")


@pytest.mark.asyncio
async def test_deadline_timeout_is_retried():
    sleeps = []
    fetcher = make_fetcher(lambda request: httpx.Response(200, content=slow_body()), sleeps,
                           timeout=0.3, max_retries=1)

    with pytest.raises(FetchTimeout) as exc_info:
        await fetcher.fetch_html("https://jobs.example.com/slow")

    assert sleeps == [2.0]
    assert len(exc_info.value.debug["tries"]) == 2


@pytest.mark.asyncio
async def test_slow_reader_gives_up_at_deadline():
    def handler(request):
        if request.url.host == "reader.test":
            return httpx.Response(200, content=slow_body())
        return httpx.Response(403)

    fetcher = make_fetcher(handler, [], timeout=0.3)

    with pytest.raises(FetchHttpError) as exc_info:
        await fetcher.fetch_html("https://www.glassdoor.com/job/1")

    assert exc_info.value.status == 403
    assert exc_info.value.debug["reader_error"].startswith("TimeoutError")
