"""
JSON-LD extractor.

Extracts job information from structured JSON-LD data (Schema.org JobPosting).
"""

import json
import logging
from typing import Dict, List, Optional, Any
from bs4 import BeautifulSoup

from .heuristics import clean_text, extract_sections, normalize_date

logger = logging.getLogger(__name__)

SALARY_UNITS = {
    'HOUR': 'per hour',
    'DAY': 'per day',
    'WEEK': 'per week',
    'MONTH': 'per month',
    'YEAR': 'per year',
}


class JSONLDExtractor:
    """Extracts job data from JSON-LD structured data."""

    def find_job_posting(self, soup: BeautifulSoup) -> Optional[Dict]:
        """First JobPosting object among the page's ld+json blocks."""
        for script in soup.find_all('script', type='application/ld+json'):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw, strict=False)
            except json.JSONDecodeError as e:
                logger.debug(f"Failed to parse JSON-LD: {e}")
                continue

            for item in self._flatten_jsonld(data):
                if self._is_job_posting(item):
                    return item
        return None

    def extract(self, soup: BeautifulSoup, url: str) -> Optional[Dict[str, Any]]:
        """
        Partial job fields from the page's JobPosting, or None if there is none.

        Keys follow ParsedJob attribute names; missing values are omitted.
        """
        job_data = self.find_job_posting(soup)
        if job_data is None:
            return None
        return self._extract_job_posting(job_data)

    def _flatten_jsonld(self, data: Any) -> List[Dict]:
        """Flatten JSON-LD structure to list of items."""
        items = []

        if isinstance(data, dict):
            # Check if it's a JobPosting directly
            if self._is_job_posting(data):
                items.append(data)
            # Check for @graph
            elif '@graph' in data and isinstance(data['@graph'], list):
                items.extend([item for item in data['@graph'] if isinstance(item, dict)])
            # Check for itemListElement
            elif 'itemListElement' in data and isinstance(data['itemListElement'], list):
                for element in data['itemListElement']:
                    if isinstance(element, dict) and isinstance(element.get('item'), dict):
                        items.append(element['item'])
        elif isinstance(data, list):
            for entry in data:
                if isinstance(entry, dict):
                    items.extend(self._flatten_jsonld(entry) or [entry])

        return items

    def _is_job_posting(self, item: Dict) -> bool:
        """Check if JSON-LD item is a JobPosting."""
        item_type = item.get('@type', '')
        if isinstance(item_type, str):
            return 'JobPosting' in item_type
        elif isinstance(item_type, list):
            return any('JobPosting' in str(t) for t in item_type)
        return False

    def _extract_job_posting(self, job_data: Dict) -> Dict[str, Any]:
        """Map JobPosting properties to job fields."""
        fields: Dict[str, Any] = {}

        title = job_data.get('title') or job_data.get('name')
        if title:
            fields['title'] = clean_text(str(title))

        company = self._organization_name(job_data.get('hiringOrganization'))
        if company:
            fields['company'] = company

        location = self._location(job_data)
        if location:
            fields['location'] = location

        salary = self._salary(job_data.get('baseSalary') or job_data.get('estimatedSalary'))
        if salary:
            fields['salary'] = salary

        description_html = job_data.get('description')
        if description_html:
            description_html = str(description_html)
            fields['description'] = clean_text(description_html)
            # Descriptions are frequently full HTML with their own section lists
            if '<' in description_html:
                fields.update(extract_sections(BeautifulSoup(description_html, 'lxml')))

        posted_at = normalize_date(job_data.get('datePosted'))
        if posted_at:
            fields['posted_at'] = posted_at

        for field_name, keys in (
            ('qualifications', ('qualifications', 'skills', 'experienceRequirements')),
            ('responsibilities', ('responsibilities',)),
            ('benefits', ('jobBenefits',)),
        ):
            for key in keys:
                items = self._as_list(job_data.get(key))
                if items:
                    fields[field_name] = items
                    break

        return fields

    def _organization_name(self, org: Any) -> str:
        if isinstance(org, list):
            org = org[0] if org else None
        if isinstance(org, dict):
            org = org.get('name') or org.get('legalName')
        return clean_text(str(org)) if org else ''

    def _location(self, job_data: Dict) -> str:
        loc = job_data.get('jobLocation')
        if isinstance(loc, list):
            loc = loc[0] if loc else None

        location = ''
        if isinstance(loc, dict):
            addr = loc.get('address')
            if isinstance(addr, dict):
                parts = []
                for key in ('addressLocality', 'addressRegion', 'addressCountry'):
                    value = addr.get(key)
                    if isinstance(value, dict):
                        value = value.get('name')
                    if value:
                        parts.append(str(value).strip())
                location = ', '.join(parts)
            elif isinstance(addr, str):
                location = addr
            elif loc.get('name'):
                location = str(loc['name'])
        elif isinstance(loc, str):
            location = loc

        location = clean_text(location)
        if not location and str(job_data.get('jobLocationType', '')).upper() == 'TELECOMMUTE':
            return 'Remote'
        return location

    def _salary(self, salary: Any) -> str:
        """Human-readable salary from a number, string or MonetaryAmount."""
        if salary is None:
            return ''
        if isinstance(salary, (int, float)):
            return f"${_format_amount(salary)}"
        if isinstance(salary, str):
            return clean_text(salary)
        if not isinstance(salary, dict):
            return ''

        currency = str(salary.get('currency') or 'USD').upper()
        value = salary.get('value')
        unit = ''
        if isinstance(value, dict):
            unit = SALARY_UNITS.get(str(value.get('unitText', '')).upper(), '')
            low = value.get('minValue')
            high = value.get('maxValue')
            single = value.get('value')
        else:
            low = high = None
            single = value

        amounts = [a for a in (low, high) if isinstance(a, (int, float))]
        if not amounts and isinstance(single, (int, float)):
            amounts = [single]
        if not amounts:
            return clean_text(str(single)) if isinstance(single, str) else ''

        if currency == 'USD':
            text = ' - '.join(f"${_format_amount(a)}" for a in amounts)
        else:
            text = ' - '.join(_format_amount(a) for a in amounts) + f" {currency}"
        return f"{text} {unit}".strip()

    def _as_list(self, value: Any) -> List[str]:
        if not value:
            return []
        if isinstance(value, list):
            return [t for t in (clean_text(str(v)) for v in value) if t]

        value = str(value)
        if '<li' in value:
            soup = BeautifulSoup(value, 'lxml')
            return [t for t in (clean_text(li.get_text(' ')) for li in soup.find_all('li')) if t]

        lines = [clean_text(line.lstrip('-•* ')) for line in value.splitlines()]
        return [line for line in lines if line]


def _format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return f"{int(amount):,}"
    return f"{amount:,.2f}"


jsonld_extractor = JSONLDExtractor()


def jsonld_step(soup: BeautifulSoup, url: str) -> Optional[Dict[str, Any]]:
    """Structured-data pass used as the first step of every site parser."""
    return jsonld_extractor.extract(soup, url)
