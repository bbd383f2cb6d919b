"""
Base plugin interface for job extraction.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple
from bs4 import BeautifulSoup

from core.domain_config import normalize_hostname
from pipeline.extractor import FetchHtml, ParsedJob, is_adequate, merge_partials
from pipeline.heuristics import (
    extract_sections, find_posted_date, find_salary, select_text, visible_text,
)

logger = logging.getLogger(__name__)

# A step takes the parsed page and its URL and returns partial job fields
Step = Callable[[BeautifulSoup, str], Optional[Dict[str, Any]]]

SALARY_SELECTORS = [
    '[class*="salary"]',
    '[class*="compensation"]',
    '[data-testid*="salary"]',
]


class ExtractionPlugin(ABC):
    """
    Base class for site parsers.

    A plugin is an ordered list of pure steps. Steps run in order and the
    first one returning an adequate result (title plus company or
    description) ends the cascade; otherwise all partial results are merged,
    earlier steps winning. Shared heuristics then fill salary, posted date
    and section lists that the steps left empty.
    """

    domains: Tuple[str, ...] = ()
    source_name: str = ''
    salary_selectors: List[str] = SALARY_SELECTORS
    prefer_salary_range = False
    use_heuristics = True

    def __init__(self, name: str, priority: int = 50):
        """
        Initialize plugin.

        Args:
            name: Plugin name (e.g., 'linkedin', 'generic')
            priority: Priority (higher = tried first, default 50)
        """
        self.name = name
        self.priority = priority
        self.logger = logging.getLogger(f"{__name__}.{name}")

    def can_handle(self, url: str) -> bool:
        """Check if this plugin handles the URL's host."""
        host = normalize_hostname(url)
        if not host:
            return False
        return any(domain in host for domain in self.domains)

    @abstractmethod
    def get_steps(self) -> List[Step]:
        """Ordered extraction steps, most authoritative first."""
        pass

    def check_content(self, html: str, soup: BeautifulSoup, url: str):
        """Raise if the HTML cannot contain the job (shell pages, captchas)."""
        return None

    def source_for(self, url: str, fields: Dict[str, Any]) -> str:
        return self.source_name or normalize_hostname(url) or 'unknown'

    def extract(self, url: str, html: str, steps: Optional[List[Step]] = None) -> ParsedJob:
        """Parse one HTML document into a ParsedJob, optionally with other steps."""
        soup = self.get_soup(html)
        self.check_content(html, soup, url)

        partials = []
        for step in steps or self.get_steps():
            partial = step(soup, url)
            if not partial:
                continue
            partials.append(partial)
            if is_adequate(partial):
                self.logger.debug(f"[plugin:{self.name}] {step.__name__} produced an adequate result")
                break

        fields = merge_partials(partials)
        if self.use_heuristics:
            fields = self.fill_from_heuristics(fields, soup)

        return ParsedJob.from_partial(url, self.source_for(url, fields), fields)

    async def parse(self, url: str, fetch_html: FetchHtml) -> ParsedJob:
        """Fetch the URL and parse it. Plugins needing several pages override this."""
        html = await fetch_html(url)
        return self.extract(url, html)

    def fill_from_heuristics(self, fields: Dict[str, Any], soup: BeautifulSoup) -> Dict[str, Any]:
        fields = dict(fields)

        if not fields.get('salary'):
            salary = self.find_salary_in_page(soup, fields.get('description'))
            if salary:
                fields['salary'] = salary

        if not fields.get('posted_at'):
            posted_at = find_posted_date(soup)
            if posted_at:
                fields['posted_at'] = posted_at

        for name, items in extract_sections(soup).items():
            if not fields.get(name):
                fields[name] = items

        return fields

    def find_salary_in_page(self, soup: BeautifulSoup, description: Optional[str]) -> Optional[str]:
        """Salary from dedicated elements, then the description, then the whole page."""
        for selector in self.salary_selectors:
            salary = find_salary(select_text(soup, [selector]), self.prefer_salary_range)
            if salary:
                return salary
        return (
            find_salary(description, self.prefer_salary_range)
            or find_salary(visible_text(soup), self.prefer_salary_range)
        )

    def get_soup(self, html: str) -> BeautifulSoup:
        """Helper to create BeautifulSoup instance"""
        return BeautifulSoup(html or '', 'lxml')

    def __repr__(self):
        return f"<{self.__class__.__name__}(name={self.name}, priority={self.priority})>"


def selector_set_step(name: str, selector_sets: List[Dict[str, List[str]]],
                      min_description: int = 0) -> Step:
    """
    Build a step that tries selector sets in order.

    Each set maps field names to CSS selectors. The first set yielding a
    title and (company or description) is returned; if none does, the most
    complete partial is returned instead.
    """
    def step(soup: BeautifulSoup, url: str) -> Optional[Dict[str, Any]]:
        best: Dict[str, Any] = {}
        for selectors in selector_sets:
            partial = {}
            for field_name, field_selectors in selectors.items():
                min_length = min_description if field_name == 'description' else 0
                value = select_text(soup, field_selectors, min_length=min_length)
                if value:
                    partial[field_name] = value
            if is_adequate(partial):
                return partial
            if len(partial) > len(best):
                best = partial
        return best or None

    step.__name__ = name
    return step
