"""
GrabJobs / JobCopilot plugin.

These boards are client-rendered apps. Plain HTTP usually returns the app
shell, which is detected up front and reported as ShellContentError so the
orchestrator moves on to browser rendering.
"""
import re
import json
import logging
from typing import Any, Dict, List, Optional
from bs4 import BeautifulSoup
from .base import ExtractionPlugin, Step, selector_set_step
from core.errors import FetchBlocked, ShellContentError
from pipeline.heuristics import clean_text, visible_text
from pipeline.jsonld import jsonld_step

logger = logging.getLogger(__name__)

MIN_HTML_LENGTH = 1000
JOB_KEYWORDS = re.compile(r'job|position', re.I)
# Challenge widgets only; reCAPTCHA on an ordinary form is not a block
CAPTCHA_SELECTORS = '.captcha, #captcha, #challenge-form, #challenge-stage, #cf-challenge-running'
CAPTCHA_TEXT = re.compile(r'\bcaptcha\b|verify you are human', re.I)
NEXT_DATA_JOB_KEYS = ('job', 'position', 'vacancy', 'posting')
MAX_NEXT_DATA_DEPTH = 8

SELECTOR_SETS = [
    {
        'title': ['h1.job-title', '.job-title h1', '[data-testid="job-title"]', '.title',
                  '[class*="JobTitle"]', '[class*="job-title"]'],
        'company': ['.company-name', '.employer-name', '[data-testid="company-name"]', '.company',
                    '[class*="Company"]', '[class*="company"]'],
        'location': ['.job-location', '.location', '[data-testid="location"]',
                     '[class*="Location"]', '[class*="location"]'],
        'description': ['.job-description', '.description', '.job-details', '.details',
                        '[class*="Description"]', '[class*="description"]', '[class*="JobDetails"]'],
    },
    {
        'title': ['h1', '.page-title', '.main-title', '[role="heading"][aria-level="1"]', 'main h1'],
        'company': ['.company', '.employer', '.organization', '[class*="employer"]', '[class*="org"]'],
        'location': ['.location', '.address', '.workplace', '[class*="address"]', '[class*="place"]'],
        'description': ['.content', '.job-content', '.main-content', 'main div', 'article div'],
    },
    {
        'title': ['h1:not(:empty)', '[class*="title"]:not(:empty)', '[class*="Title"]:not(:empty)'],
        'company': ['[class*="company"]:not(:empty)', '[class*="Company"]:not(:empty)',
                    '[class*="employer"]:not(:empty)'],
        'location': ['[class*="location"]:not(:empty)', '[class*="Location"]:not(:empty)',
                     '[class*="address"]:not(:empty)'],
        'description': ['[class*="description"]:not(:empty)', '[class*="Description"]:not(:empty)',
                        '[class*="detail"]:not(:empty)', '[class*="Detail"]:not(:empty)'],
    },
]

SALARY_SELECTORS = [
    '.salary, .pay, .compensation, .wage',
    '[data-testid="salary"], [data-testid="pay"]',
    'span:-soup-contains("$")',
    '.job-salary, .salary-info, .pay-info',
]


def load_next_data(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    """Parsed __NEXT_DATA__ payload, or None if absent or not valid JSON."""
    script = soup.find('script', id='__NEXT_DATA__')
    if script is None:
        return None
    try:
        data = json.loads(script.string or script.get_text() or '')
    except json.JSONDecodeError as e:
        logger.debug(f"[plugin:grabjobs] Could not parse __NEXT_DATA__: {e}")
        return None
    return data if isinstance(data, dict) else None


def find_job_object(data: Any, depth: int = 0) -> Optional[Dict[str, Any]]:
    """Depth-first search for a dict under a job-like key that carries a title."""
    if depth > MAX_NEXT_DATA_DEPTH:
        return None
    if isinstance(data, dict):
        for key, value in data.items():
            if isinstance(value, dict) and any(k in key.lower() for k in NEXT_DATA_JOB_KEYS):
                if any(value.get(k) for k in ('title', 'name', 'position')):
                    return value
        children = list(data.values())
    elif isinstance(data, list):
        children = data
    else:
        return None

    for child in children:
        found = find_job_object(child, depth + 1)
        if found:
            return found
    return None


def _first(obj: Dict[str, Any], keys) -> str:
    for key in keys:
        value = obj.get(key)
        if isinstance(value, dict):
            value = value.get('name') or value.get('title')
        if value and isinstance(value, (str, int, float)):
            return clean_text(str(value))
    return ''


def next_data_step(soup: BeautifulSoup, url: str) -> Optional[Dict[str, Any]]:
    """Job fields from the framework's embedded page data."""
    data = load_next_data(soup)
    job = find_job_object(data) if data else None
    if not job:
        return None
    fields = {
        'title': _first(job, ('title', 'name', 'position')),
        'company': _first(job, ('company', 'employer', 'organization', 'companyName')),
        'location': _first(job, ('location', 'address', 'place')),
        'description': _first(job, ('description', 'details', 'content')),
        'salary': _first(job, ('salary', 'pay', 'compensation')),
    }
    return {k: v for k, v in fields.items() if v} or None


selector_cascade_step = selector_set_step('selector_cascade_step', SELECTOR_SETS)


class GrabJobsPlugin(ExtractionPlugin):
    """Parser for grabjobs.com and jobcopilot.com job pages"""

    domains = ('grabjobs.com', 'jobcopilot.com')
    source_name = 'GrabJobs'
    salary_selectors = SALARY_SELECTORS

    def __init__(self):
        super().__init__(name="grabjobs", priority=70)

    def get_steps(self) -> List[Step]:
        return [jsonld_step, selector_cascade_step, next_data_step]

    def check_content(self, html: str, soup: BeautifulSoup, url: str):
        """Reject captcha pages and unrendered app shells."""
        debug = {'html_length': len(html or '')}

        text = visible_text(soup)
        if soup.select_one(CAPTCHA_SELECTORS) is not None or CAPTCHA_TEXT.search(text):
            raise FetchBlocked("Captcha detected", debug=debug)

        if len(html) < MIN_HTML_LENGTH:
            raise ShellContentError(
                f"SPA shell without content ({len(html)} chars)", debug=debug
            )

        if 'Loading...' in text and not JOB_KEYWORDS.search(text.replace('Loading...', '')):
            raise ShellContentError("Page still showing loading state", debug=debug)

        if soup.find('script', id='__NEXT_DATA__') is not None:
            next_data = load_next_data(soup)
            if next_data is not None and not next_data.get('props'):
                raise ShellContentError("Next.js data present but props are empty", debug=debug)
