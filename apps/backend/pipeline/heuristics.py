"""
Heuristic helpers shared by the site parsers.

Text cleaning, salary detection, DOM selector helpers, labelled posted
dates and bullet-list sections following qualification/responsibility/
benefit headings.
"""

import re
import html
import logging
from typing import Dict, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

SALARY_PATTERN = re.compile(
    r'\$[\d,]+(?:\s*[-–]\s*\$[\d,]+)?(?:\s*(?:per|/)\s*(?:hour|hr|year|yr|annually|monthly|mo))?',
    re.IGNORECASE,
)

BLOCK_TEXT_PATTERN = re.compile(r'\b(?:blocked|captcha|robot|verify you are human)\b', re.IGNORECASE)

SECTION_PATTERNS = {
    'qualifications': re.compile(
        r"qualification|requirement|skills|what you.?ll need|what we.?re looking for|who you are|must have|experience required",
        re.I,
    ),
    'responsibilities': re.compile(
        r"responsibilit|what you.?ll do|duties|your role|the role|day[- ]to[- ]day|key tasks",
        re.I,
    ),
    'benefits': re.compile(r"benefit|perks|what we offer|why join", re.I),
}

HEADING_TAGS = ['h1', 'h2', 'h3', 'h4', 'h5', 'h6']
SECTION_LABEL_TAGS = ['h2', 'h3', 'h4', 'h5', 'p', 'strong', 'b']
MAX_SECTION_ITEMS = 30

POSTED_LABELS = ['date posted', 'posted on', 'posted', 'published']
POSTED_TEXT_PATTERN = re.compile(
    r'(?i:posted|published)(?:\s+on)?[:\s]+'
    r'(\d{4}-\d{2}-\d{2}|[A-Z][a-z]{2,8}\.?\s+\d{1,2},?\s+\d{4}|\d{1,2}\s+[A-Z][a-z]{2,8}\s+\d{4})'
)


def clean_text(text: Optional[str]) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    if not text:
        return ''
    if '<' in text and '>' in text:
        text = BeautifulSoup(text, 'lxml').get_text(' ')
    text = html.unescape(text)
    return re.sub(r'\s+', ' ', text).strip()


def find_salary(text: Optional[str], prefer_range: bool = False) -> Optional[str]:
    """
    First salary-looking substring in text.

    With prefer_range, a ranged match ("$90,000 - $120,000") wins over an
    earlier single amount.
    """
    if not text or '$' not in text:
        return None
    matches = [m.group(0).strip() for m in SALARY_PATTERN.finditer(text)]
    if not matches:
        return None
    if prefer_range:
        for match in matches:
            if '-' in match or '–' in match:
                return match
    return matches[0]


def looks_blocked(soup: BeautifulSoup) -> bool:
    """True when visible page text carries bot-block markers."""
    return bool(BLOCK_TEXT_PATTERN.search(visible_text(soup)))


def visible_text(soup: Optional[BeautifulSoup]) -> str:
    """Cleaned text of the page body without script/style content."""
    if soup is None:
        return ''
    root = soup.body or soup
    parts = []
    for node in root.find_all(string=True):
        if node.parent and node.parent.name in ('script', 'style', 'noscript', 'template'):
            continue
        parts.append(str(node))
    return clean_text(' '.join(parts))


def select_text(soup: BeautifulSoup, selectors: Iterable[str], min_length: int = 0) -> str:
    """Cleaned text of the first selector match longer than min_length."""
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = clean_text(element.get_text(' '))
        if text and len(text) > min_length:
            return text
    return ''


def meta_content(soup: BeautifulSoup, key: str) -> str:
    """Content of <meta property=key> or <meta name=key>."""
    tag = soup.find('meta', attrs={'property': key}) or soup.find('meta', attrs={'name': key})
    if tag and tag.get('content'):
        return clean_text(tag['content'])
    return ''


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Parse a date string into YYYY-MM-DD; None if it does not look like a date."""
    if not value:
        return None
    value = str(value).strip()
    # Relative phrases ("3 days ago") would parse as garbage.
    if not re.search(r'\d{4}', value):
        return None
    try:
        return date_parser.parse(value, fuzzy=True).strftime('%Y-%m-%d')
    except (ValueError, OverflowError) as e:
        logger.debug(f"Failed to parse date '{value}': {e}")
        return None


def find_posted_date(soup: BeautifulSoup) -> Optional[str]:
    """Posted date from a labelled value ("Date posted: ...") or page text."""
    for label_text in POSTED_LABELS:
        labels = soup.find_all(['dt', 'th', 'label', 'span'], string=re.compile(label_text, re.I))
        for label in labels:
            value_elem = label.find_next_sibling(['dd', 'td', 'div', 'span', 'time'])
            if value_elem:
                parsed = normalize_date(value_elem.get('datetime') or value_elem.get_text())
                if parsed:
                    return parsed

    match = POSTED_TEXT_PATTERN.search(visible_text(soup))
    if match:
        return normalize_date(match.group(1))
    return None


def _section_items(label: Tag) -> List[str]:
    start = label
    if label.name in ('strong', 'b') and label.parent is not None and label.parent.name in ('p', 'div'):
        start = label.parent

    current = start.find_next_sibling()
    while current is not None and current.name not in HEADING_TAGS:
        if current.name in ('ul', 'ol'):
            items = [clean_text(li.get_text(' ')) for li in current.find_all('li')]
            return [item for item in items if item][:MAX_SECTION_ITEMS]
        current = current.find_next_sibling()
    return []


def extract_sections(soup: Optional[BeautifulSoup]) -> Dict[str, List[str]]:
    """
    Bullet lists under qualification, responsibility and benefit headings.

    For each candidate label (a heading, or a short bold/paragraph line) the
    following siblings are walked until the next heading; the first list found
    becomes the section. Each section keeps the first list it gets.
    """
    sections: Dict[str, List[str]] = {}
    if soup is None:
        return sections

    for label in soup.find_all(SECTION_LABEL_TAGS):
        text = clean_text(label.get_text(' '))
        if not text or len(text) > 60:
            continue
        for name, pattern in SECTION_PATTERNS.items():
            if name in sections or not pattern.search(text):
                continue
            items = _section_items(label)
            if items:
                sections[name] = items
            break
    return sections
