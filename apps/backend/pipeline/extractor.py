"""
Extraction entry point and the ParsedJob record.

A site plugin is chosen by hostname and asked to parse the URL through a
fetch callable supplied by the orchestrator (HTTP or browser, depending on
the strategy being tried). Plugins combine partial field dicts; this module
turns them into an immutable ParsedJob.
"""

import logging
from dataclasses import dataclass, fields as dataclass_fields
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from core.errors import ExtractionIncomplete

logger = logging.getLogger(__name__)

FetchHtml = Callable[[str], Awaitable[str]]

TEXT_FIELDS = ('title', 'company', 'location', 'salary', 'description', 'posted_at')
LIST_FIELDS = ('qualifications', 'responsibilities', 'benefits')
SCORE_FIELDS = ('title', 'company', 'location', 'description')

WIRE_NAMES = {
    'apply_url': 'applyUrl',
    'posted_at': 'postedAt',
}


@dataclass(frozen=True)
class ParsedJob:
    """Normalized job posting. Everything except apply_url/source is optional."""
    apply_url: str
    source: str
    title: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    salary: Optional[str] = None
    description: Optional[str] = None
    posted_at: Optional[str] = None
    qualifications: Tuple[str, ...] = ()
    responsibilities: Tuple[str, ...] = ()
    benefits: Tuple[str, ...] = ()

    @classmethod
    def from_partial(cls, apply_url: str, source: str, partial: Optional[Dict[str, Any]] = None) -> 'ParsedJob':
        """Build a job from a partial field dict, dropping empty values."""
        partial = partial or {}
        values: Dict[str, Any] = {}
        for name in TEXT_FIELDS:
            value = partial.get(name)
            if isinstance(value, str):
                value = value.strip()
            if value:
                values[name] = str(value)
        for name in LIST_FIELDS:
            items = tuple(str(item).strip() for item in partial.get(name) or () if str(item).strip())
            if items:
                values[name] = items
        return cls(apply_url=apply_url, source=source or 'unknown', **values)

    def is_adequate(self) -> bool:
        return is_adequate(self.__dict__)

    def has_content(self) -> bool:
        """Whether any of title, company or description was found."""
        return bool(self.title or self.company or self.description)

    def filled_fields(self) -> List[str]:
        return [name for name in SCORE_FIELDS if getattr(self, name)]

    def missing_fields(self) -> List[str]:
        return [name for name in SCORE_FIELDS if not getattr(self, name)]

    def success_score(self) -> float:
        """Share of the core fields (title, company, location, description) found."""
        return len(self.filled_fields()) / len(SCORE_FIELDS)

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation with camelCase keys; empty fields are omitted."""
        data: Dict[str, Any] = {}
        for field in dataclass_fields(self):
            value = getattr(self, field.name)
            if value in (None, '', ()):
                continue
            key = WIRE_NAMES.get(field.name, field.name)
            data[key] = list(value) if isinstance(value, tuple) else value
        return data


def is_adequate(partial: Optional[Dict[str, Any]]) -> bool:
    """A title plus a company or description is enough to stop a cascade."""
    if not partial:
        return False
    return bool(partial.get('title') and (partial.get('company') or partial.get('description')))


def merge_partials(partials: List[Optional[Dict[str, Any]]]) -> Dict[str, Any]:
    """Merge partial field dicts; values from earlier dicts win."""
    merged: Dict[str, Any] = {}
    for partial in partials:
        if not partial:
            continue
        for key, value in partial.items():
            if value and not merged.get(key):
                merged[key] = value
    return merged


async def parse_from_url(url: str, fetch_html: FetchHtml) -> ParsedJob:
    """
    Fetch and parse a job URL with the plugin registered for its host.

    Raises:
        ExtractionIncomplete: the page yielded no title, company or description
        ScrapeError: fetch or shell-detection failures from the plugin
    """
    from crawler.plugins.registry import get_plugin_registry

    plugin = get_plugin_registry().find_plugin(url)
    logger.info(f"[extract] Using plugin {plugin.name} for {url[:100]}")

    job = await plugin.parse(url, fetch_html)

    if not job.has_content():
        raise ExtractionIncomplete(
            f"{plugin.name} parser found no title, company or description",
            debug={'plugin': plugin.name},
        )

    logger.info(f"[extract] {plugin.name} parsed {url[:100]}: fields={job.filled_fields()}")
    return job
