"""
Wellfound (formerly AngelList Talent) plugin.
"""
import logging
from typing import Any, Dict, List, Optional
from bs4 import BeautifulSoup
from .base import ExtractionPlugin, Step
from pipeline.heuristics import meta_content, select_text
from pipeline.jsonld import jsonld_step

logger = logging.getLogger(__name__)

DESCRIPTION_SELECTORS = [
    '[data-testid="job-description"]',
    '#job-details',
    '[class*="styles_description__"]',
]


def page_step(soup: BeautifulSoup, url: str) -> Optional[Dict[str, Any]]:
    fields = {
        'title': meta_content(soup, 'og:title') or select_text(soup, ['h1']),
        'company': select_text(soup, ['a[href*="/company/"]']),
        'location': select_text(soup, ['[data-testid="job-location"]', '[class*="location"]']),
        'description': select_text(soup, DESCRIPTION_SELECTORS),
    }
    return {k: v for k, v in fields.items() if v} or None


class WellfoundPlugin(ExtractionPlugin):
    """Parser for wellfound.com and legacy angel.co job pages"""

    domains = ('wellfound.com', 'angel.co')
    source_name = 'Wellfound'

    def __init__(self):
        super().__init__(name="wellfound", priority=80)

    def get_steps(self) -> List[Step]:
        return [jsonld_step, page_step]
