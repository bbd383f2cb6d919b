"""
LinkedIn job page plugin.

LinkedIn markup changes often, so title/company/location are read through
several selector generations. When the page is a login wall, the public
guest endpoint for the job id is fetched instead.
"""
import re
import logging
from typing import List, Optional
from urllib.parse import urlparse, parse_qs
from .base import ExtractionPlugin, Step, selector_set_step
from core.errors import ScrapeError
from pipeline.extractor import FetchHtml, ParsedJob
from pipeline.jsonld import jsonld_step

logger = logging.getLogger(__name__)

GUEST_JOB_URL = "https://www.linkedin.com/jobs-guest/jobs/api/jobPosting/{job_id}"
JOB_ID_PATTERN = re.compile(r'(?:jobs|view)/.*(?:/|%2F)(\d{5,})')

TITLE_SELECTORS = [
    'h1[data-test-id="job-title"]',
    'h1.t-24.t-bold.inline',
    '.jobs-unified-top-card__job-title h1',
    'h1.topcard__title',
]
COMPANY_SELECTORS = [
    'a[data-test-id="job-details-company-name"]',
    '.jobs-unified-top-card__company-name a',
    '.job-details-company__company-information a',
    'a.topcard__org-name-link',
]
LOCATION_SELECTORS = [
    '[data-test-id="job-details-location"]',
    '.jobs-unified-top-card__bullet',
    '.job-details-jobs-unified-top-card__primary-description-container .tvm__text',
    '.topcard__flavor--bullet',
]
DESCRIPTION_SELECTORS = [
    '.jobs-description__container',
    '.jobs-description-content__text',
    '.jobs-description',
    '[data-test-id="job-details-description"]',
    '.job-details-description-text',
    '.description__text',
    '.show-more-less-html__markup',
    'div[class*="description"] section',
    '#job-details',
]
# Only a description longer than this is trusted
MIN_DESCRIPTION_LENGTH = 100

GUEST_SELECTORS = {
    'title': ['h2.top-card-layout__title', 'h1'],
    'company': ['a.topcard__org-name-link', 'span.topcard__flavor'],
    'location': ['span.topcard__flavor--bullet'],
    'description': ['#job-details', 'section.description', '.show-more-less-html__markup'],
}

GENERIC_SELECTORS = {
    'title': ['h1', '.job-title', '[class*="job-title"]', '[class*="title"]'],
    'company': ['[class*="company"]', '[data-test*="company"]'],
    'location': ['[class*="location"]', '[data-test*="location"]'],
    'description': ['[class*="description"]', '[class*="job-details"]', '.description', '#job-details'],
}


def extract_job_id(url: str) -> Optional[str]:
    """Job id from currentJobId/trkId query params or the URL path."""
    try:
        query = parse_qs(urlparse(url).query)
    except ValueError:
        return None
    for key in ('currentJobId', 'trkId'):
        if query.get(key) and query[key][0]:
            return query[key][0]
    match = JOB_ID_PATTERN.search(url)
    return match.group(1) if match else None


top_card_step = selector_set_step(
    'top_card_step',
    [{
        'title': TITLE_SELECTORS,
        'company': COMPANY_SELECTORS,
        'location': LOCATION_SELECTORS,
        'description': DESCRIPTION_SELECTORS,
    }],
    min_description=MIN_DESCRIPTION_LENGTH,
)
guest_step = selector_set_step('guest_step', [GUEST_SELECTORS])
generic_selector_step = selector_set_step('generic_selector_step', [GENERIC_SELECTORS])


class LinkedInPlugin(ExtractionPlugin):
    """Parser for linkedin.com job views"""

    domains = ('linkedin.com',)
    source_name = 'LinkedIn'
    prefer_salary_range = True

    def __init__(self):
        super().__init__(name="linkedin", priority=100)

    def get_steps(self) -> List[Step]:
        return [jsonld_step, top_card_step]

    async def parse(self, url: str, fetch_html: FetchHtml) -> ParsedJob:
        """
        Parse the job page; fall back to the guest endpoint when the page
        yields neither title nor company (login wall or failed fetch), and
        to loose class-name selectors after that.
        """
        primary_error: Optional[ScrapeError] = None
        html = ''
        try:
            html = await fetch_html(url)
        except ScrapeError as e:
            primary_error = e
            self.logger.info(f"[plugin:linkedin] Direct fetch failed for {url}: {e}")

        job = self.extract(url, html)
        if job.title or job.company:
            return job

        job_id = extract_job_id(url)
        if job_id:
            guest_url = GUEST_JOB_URL.format(job_id=job_id)
            self.logger.info(f"[plugin:linkedin] Trying guest endpoint {guest_url}")
            try:
                guest_html = await fetch_html(guest_url)
            except ScrapeError as e:
                self.logger.info(f"[plugin:linkedin] Guest endpoint failed: {e}")
            else:
                guest_job = self.extract_guest(url, guest_html)
                if guest_job.title or guest_job.company:
                    return guest_job

        job = self.extract(url, html, steps=self.get_steps() + [generic_selector_step])
        if primary_error is not None and not job.has_content():
            raise primary_error
        return job

    def extract_guest(self, url: str, html: str) -> ParsedJob:
        """Parse the guest endpoint fragment, keeping the original URL as apply URL."""
        soup = self.get_soup(html)
        fields = guest_step(soup, url) or {}
        fields = self.fill_from_heuristics(fields, soup)
        return ParsedJob.from_partial(url, self.source_name, fields)
