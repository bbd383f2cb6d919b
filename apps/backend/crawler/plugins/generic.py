"""
Generic extraction plugin.

Fallback for hosts without a site parser: structured data first, then
Open Graph and meta tags. No selector or text heuristics are applied.
"""
import logging
from typing import Any, Dict, List, Optional
from bs4 import BeautifulSoup
from .base import ExtractionPlugin, Step
from core.domain_config import normalize_hostname
from pipeline.heuristics import clean_text, meta_content
from pipeline.jsonld import jsonld_step

logger = logging.getLogger(__name__)

TITLE_COMPANY_SEPARATOR = ' at '


def split_title_company(title: str) -> Dict[str, str]:
    """'Backend Engineer at Acme' -> title and company; splits on the last ' at '."""
    if TITLE_COMPANY_SEPARATOR not in title:
        return {'title': title}
    head, _, tail = title.rpartition(TITLE_COMPANY_SEPARATOR)
    head, tail = head.strip(), tail.strip()
    if not head or not tail:
        return {'title': title}
    return {'title': head, 'company': tail}


def meta_step(soup: BeautifulSoup, url: str) -> Optional[Dict[str, Any]]:
    fields: Dict[str, Any] = {}

    title = meta_content(soup, 'og:title')
    if not title and soup.title and soup.title.string:
        title = clean_text(soup.title.string)
    if title:
        fields.update(split_title_company(title))

    description = meta_content(soup, 'og:description') or meta_content(soup, 'description')
    if description:
        fields['description'] = description

    site_name = meta_content(soup, 'og:site_name')
    if site_name:
        fields['site_name'] = site_name

    return fields or None


class GenericPlugin(ExtractionPlugin):
    """Generic fallback plugin for job extraction"""

    use_heuristics = False

    def __init__(self):
        super().__init__(name="generic", priority=10)  # Low priority - fallback only

    def can_handle(self, url: str) -> bool:
        """Generic plugin can always handle (as fallback)"""
        return True

    def get_steps(self) -> List[Step]:
        return [jsonld_step, meta_step]

    def source_for(self, url: str, fields: Dict[str, Any]) -> str:
        return fields.get('site_name') or normalize_hostname(url) or 'unknown'
