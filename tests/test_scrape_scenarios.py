"""
End-to-end scrape scenarios: shipped domain table, real HTTP executor over
httpx.MockTransport, real site parsers, stubbed browser.
"""
import httpx
import pytest
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "apps" / "backend"))

from core.domain_config import DEFAULT_CONFIG_PATH, DomainTable, load_domain_profiles
from core.errors import BrowserFetchError
from core.net import FetchResult, HTTPFetcher
from orchestrator import JobScrapingService

READER = "https://reader.test/"

INDEED_HTML = """
<html><body>
  <h1>Senior Python Developer</h1>
  <div data-company-name><a>Initech</a></div>
  <div class="jobsearch-CompanyInfoContainer"><div>Austin, TX</div></div>
  <div id="jobDescriptionText">
    <p>Build internal tooling.</p>
    <h3>Requirements</h3>
    <ul><li>5+ years of Python</li><li>Async experience</li></ul>
  </div>
  <div class="jobsearch-SalaryInfoContainer">$130,000 - $160,000 a year</div>
</body></html>
"""

GRABJOBS_RENDERED = """
<html><body><div id="__next">
  <h1 class="job-title">Barista</h1>
  <div class="company-name">Bean Co</div>
  <div class="job-location">Singapore</div>
  <div class="job-description">Prepare coffee and keep the bar spotless. Pay from $18 per hour.</div>
  <p>""" + "Great place to work. " * 60 + """</p>
</div></body></html>
"""


class StubBrowser:
    """Browser executor serving canned rendered pages; anything else fails."""

    def __init__(self, pages=None):
        self.pages = pages or {}
        self.calls = []

    async def fetch_html(self, url, config):
        self.calls.append(url)
        if url in self.pages:
            return FetchResult(html=self.pages[url], debug={"url": url})
        raise BrowserFetchError(f"Browser fetch failed for {url}", debug={"url": url})

    async def test_connection(self):
        return False


def build_service(handler, browser):
    backoff = []
    http_sleeps = []

    async def record_backoff(seconds):
        backoff.append(seconds)

    async def record_http_sleep(seconds):
        http_sleeps.append(seconds)

    http = HTTPFetcher(
        reader_url=READER,
        sleep=record_http_sleep,
        transport=httpx.MockTransport(handler),
        pre_delay=False,
    )
    service = JobScrapingService(
        domain_table=DomainTable(profiles=load_domain_profiles(str(DEFAULT_CONFIG_PATH))),
        http_fetcher=http,
        browser=browser,
        sleep=record_backoff,
    )
    return service, backoff, http_sleeps


@pytest.mark.asyncio
async def test_indeed_403_recovered_through_reader():
    url = "https://www.indeed.com/viewjob?jk=abc123"
    reader_calls = []

    def handler(request):
        if request.url.host == "reader.test":
            reader_calls.append(str(request.url))
            return httpx.Response(200, text=INDEED_HTML)
        return httpx.Response(403, text="Forbidden")

    service, backoff, _ = build_service(handler, StubBrowser())

    result = await service.scrape(url)

    assert result.debug.success is True
    assert len(result.debug.attempts) >= 1
    # Browser goes first for indeed.com, plain HTTP second
    assert [a.config.service for a in result.debug.attempts] == ["browser", "http"]
    assert backoff == [1.0]
    assert len(reader_calls) == 1
    assert reader_calls[0].endswith("www.indeed.com/viewjob?jk=abc123")

    job = result.job
    assert job.apply_url == url
    assert job.title == "Senior Python Developer"
    assert job.company == "Initech"
    assert job.location == "Austin, TX"
    assert job.salary == "$130,000 - $160,000"
    assert job.qualifications == ("5+ years of Python", "Async experience")
    assert job.source == "Indeed"

    http_debug = result.debug.attempts[1].debug[0]
    assert http_debug["reader_used"] is True


@pytest.mark.asyncio
async def test_unknown_domain_500_everywhere():
    url = "https://careers.unknown-employer.example/jobs/77"
    requests = []

    def handler(request):
        requests.append(str(request.url))
        return httpx.Response(500, text="Internal Server Error")

    service, backoff, http_sleeps = build_service(handler, StubBrowser())

    result = await service.scrape(url)

    assert len(result.debug.attempts) == 2
    assert [a.config.service for a in result.debug.attempts] == ["http", "browser"]
    assert result.debug.attempts[0].error_type == "FetchHttpError"
    assert result.debug.success is False
    assert result.job.to_dict() == {"applyUrl": url, "source": "careers.unknown-employer.example"}
    # Three HTTP tries with executor backoff, one orchestrator backoff
    assert len(requests) == 3
    assert http_sleeps == [2.0, 4.0]
    assert backoff == [1.0]


@pytest.mark.asyncio
async def test_spa_shell_falls_through_to_browser():
    url = "https://grabjobs.com/singapore/job/barista-123"

    def handler(request):
        return httpx.Response(200, text="<html><body><div id='__next'></div><script src='/app.js'></script></body></html>")

    browser = StubBrowser(pages={url: GRABJOBS_RENDERED})
    service, backoff, _ = build_service(handler, browser)

    result = await service.scrape(url)

    first, second = result.debug.attempts
    assert first.config.service == "http"
    assert first.error_type == "ShellContentError"
    assert second.config.service == "browser"
    assert second.success is True
    assert browser.calls == [url]

    job = result.job
    assert job.title == "Barista"
    assert job.company == "Bean Co"
    assert job.location == "Singapore"
    assert job.salary == "$18 per hour"
    assert job.source == "GrabJobs"
