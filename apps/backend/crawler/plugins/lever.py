"""
Lever-hosted job boards (jobs.lever.co/<company>/<posting id>).
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
from bs4 import BeautifulSoup
from .base import ExtractionPlugin, Step
from pipeline.heuristics import clean_text, select_text
from pipeline.jsonld import jsonld_step

logger = logging.getLogger(__name__)


def company_from_path(url: str) -> str:
    """'https://jobs.lever.co/acme-robotics/123' -> 'Acme Robotics'"""
    try:
        segments = [s for s in urlparse(url).path.split('/') if s]
    except ValueError:
        return ''
    if not segments:
        return ''
    return segments[0].replace('-', ' ').replace('_', ' ').title()


def posting_step(soup: BeautifulSoup, url: str) -> Optional[Dict[str, Any]]:
    company = ''
    logo = soup.select_one('.main-header-logo img[alt]')
    if logo is not None:
        company = clean_text(logo['alt'])
    company = company or company_from_path(url)

    fields = {
        'title': select_text(soup, ['.posting-headline h2', '.posting-headline h1']),
        'company': company,
        'location': select_text(soup, ['.posting-categories .location', '.posting-category.location']),
        'description': select_text(soup, ['[data-qa="job-description"]', '.posting-page .section-wrapper']),
        'salary': select_text(soup, ['[data-qa="salary-range"]']),
    }
    return {k: v for k, v in fields.items() if v} or None


class LeverPlugin(ExtractionPlugin):
    """Parser for Lever job postings"""

    domains = ('lever.co',)
    source_name = 'Lever'

    def __init__(self):
        super().__init__(name="lever", priority=60)

    def get_steps(self) -> List[Step]:
        return [jsonld_step, posting_step]
