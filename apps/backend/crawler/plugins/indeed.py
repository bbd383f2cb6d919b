"""
Indeed job page plugin.

Indeed serves the same posting under several URL shapes and blocks some of
them more aggressively than others, so a handful of variants are tried in
turn until one yields a usable page.
"""
import logging
from typing import List, Optional
from urllib.parse import urlparse, parse_qs
from .base import ExtractionPlugin, Step, selector_set_step
from core.errors import FetchBlocked, ScrapeError
from pipeline.extractor import FetchHtml, ParsedJob
from pipeline.heuristics import looks_blocked
from pipeline.jsonld import jsonld_step

logger = logging.getLogger(__name__)

VIEWJOB_URL = "https://www.indeed.com/viewjob?jk={key}"
JOBS_URL = "https://www.indeed.com/jobs?vjk={key}"
MIN_PAGE_LENGTH = 100

SELECTOR_SETS = [
    {
        'title': ['h1'],
        'company': ['[data-company-name] a'],
        'location': ['.jobsearch-CompanyInfoContainer div'],
        'description': ['#jobDescriptionText'],
    },
    {
        'title': ['.jobsearch-JobInfoHeader-title'],
        'company': ['.jobsearch-InlineCompanyRating a'],
        'location': ['[data-testid="job-location"]'],
        'description': ['#jobDescriptionText'],
    },
    {
        'title': ['[data-testid="jobTitle"]'],
        'company': ['[data-testid="inlineHeader-companyName"]'],
        'location': ['[data-testid="job-location"]'],
        'description': ['#jobDescriptionText'],
    },
]

SALARY_SELECTORS = [
    '.jobsearch-SalaryInfoContainer',
    '[data-testid="salary-snippet"]',
    '.metadata.salary-snippet-container',
    '.salary-snippet',
    '.salary',
    '.jobsearch-DesktopStickyContainer span:-soup-contains("$")',
    'span:-soup-contains("$")',
]


def url_variants(url: str) -> List[str]:
    """Original URL, canonical viewjob/jobs URLs for vjk/jk keys, then the mobile host."""
    variants = [url]
    try:
        parsed = urlparse(url)
        query = parse_qs(parsed.query)
    except ValueError:
        return variants

    vjk = (query.get('vjk') or [''])[0]
    jk = (query.get('jk') or [''])[0]
    if vjk:
        variants.append(VIEWJOB_URL.format(key=vjk))
        variants.append(JOBS_URL.format(key=vjk))
    if jk:
        variants.append(VIEWJOB_URL.format(key=jk))
    if 'www.indeed.com' in (parsed.netloc or ''):
        variants.append(url.replace('www.indeed.com', 'm.indeed.com', 1))

    # De-duplicate, keeping order
    return list(dict.fromkeys(variants))


selector_cascade_step = selector_set_step('selector_cascade_step', SELECTOR_SETS)


class IndeedPlugin(ExtractionPlugin):
    """Parser for indeed.com postings"""

    domains = ('indeed.com',)
    source_name = 'Indeed'
    salary_selectors = SALARY_SELECTORS

    def __init__(self):
        super().__init__(name="indeed", priority=90)

    def get_steps(self) -> List[Step]:
        return [jsonld_step, selector_cascade_step]

    async def parse(self, url: str, fetch_html: FetchHtml) -> ParsedJob:
        """
        Try each URL variant until one parses into a job.

        Raises the last fetch error if every variant failed to fetch, or
        FetchBlocked if every fetched page looked like a block page.
        """
        last_error: Optional[ScrapeError] = None
        fallback_job: Optional[ParsedJob] = None

        for variant in url_variants(url):
            try:
                html = await fetch_html(variant)
            except ScrapeError as e:
                self.logger.info(f"[plugin:indeed] Fetch failed for {variant}: {e}")
                last_error = e
                continue

            soup = self.get_soup(html)
            if len(html) < MIN_PAGE_LENGTH or looks_blocked(soup):
                self.logger.info(f"[plugin:indeed] Blocked or empty page for {variant}, trying next")
                last_error = FetchBlocked(f"Indeed returned a block page for {variant}")
                continue

            # Parse with the original URL so apply_url stays what the caller asked for
            job = self.extract(url, html)
            if job.is_adequate():
                return job
            if fallback_job is None and job.has_content():
                fallback_job = job

        if fallback_job is not None:
            return fallback_job
        if last_error is not None:
            raise last_error
        return ParsedJob.from_partial(url, self.source_name)
