"""
Job URL parsing endpoints.

POST /api/jobs/parse is the public entry point; /api/jobs/parse/test is a
diagnostics surface for checking individual sites and small batches.
"""
import logging
from typing import List, Optional
from pydantic import BaseModel
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from app.rate_limit import limiter, RATE_LIMIT_PARSE
from core.domain_config import normalize_hostname
from core.net import is_valid_http_url
from orchestrator import get_scraping_service, success_score_label

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_BATCH_URLS = 5

TEST_URLS = {
    'linkedin': 'https://www.linkedin.com/jobs/view/3766565837',
    'indeed': 'https://www.indeed.com/viewjob?jk=test123',
    'wellfound': 'https://wellfound.com/l/test',
    'lever': 'https://jobs.lever.co/example/test',
    'greenhouse': 'https://boards.greenhouse.io/example/jobs/test',
    'httpbin': 'https://httpbin.org/html',
}


class ParseRequest(BaseModel):
    url: Optional[str] = None
    debug: bool = False


class BatchTestRequest(BaseModel):
    urls: Optional[List[str]] = None
    verbose: bool = False


def invalid_url_response() -> JSONResponse:
    return JSONResponse(status_code=400, content={'error': 'Invalid URL'})


def degraded_job(url: str) -> dict:
    return {'applyUrl': url, 'source': normalize_hostname(url) or 'unknown'}


@router.post("/api/jobs/parse")
@limiter.limit(RATE_LIMIT_PARSE)
async def parse_job(request: Request, body: ParseRequest):
    """
    Parse a job posting URL into structured fields.

    Always answers with a job (possibly only applyUrl and source) unless the
    URL itself is invalid.
    """
    url = (body.url or '').strip()
    if not is_valid_http_url(url):
        return invalid_url_response()

    try:
        result = await get_scraping_service().scrape(url, debug=body.debug)
    except Exception as e:
        logger.error(f"[parse] Unexpected failure parsing {url[:100]}: {e}", exc_info=True)
        return {'job': degraded_job(url)}

    response = {'job': result.job.to_dict()}
    if body.debug:
        response['debug'] = {
            'scraping': result.debug.to_dict(),
            'parsedFields': {
                'title': bool(result.job.title),
                'company': bool(result.job.company),
                'location': bool(result.job.location),
                'description': bool(result.job.description),
                'salary': bool(result.job.salary),
            },
            'successScore': success_score_label(result.job),
            'filledFields': result.job.filled_fields(),
            'missingFields': result.job.missing_fields(),
            'totalTime': result.debug.total_time_ms,
        }
    return response


@router.get("/api/jobs/parse/test")
async def parse_test(
    url: Optional[str] = Query(None, description="Job URL to test"),
    verbose: bool = Query(False, description="Include debug trace and the full job"),
):
    """Usage and service status without a URL; a single diagnostic scrape with one."""
    service = get_scraping_service()

    if not url:
        return {
            'message': 'Job parsing test endpoint',
            'usage': {
                'GET': '/api/jobs/parse/test?url=<job-url>&verbose=true',
                'POST': '/api/jobs/parse/test with {"urls": [...], "verbose": true}',
            },
            'testUrls': TEST_URLS,
            'serviceStatus': await service.get_service_status(),
            'examples': [f"/api/jobs/parse/test?url={test_url}" for test_url in TEST_URLS.values()],
        }

    if not is_valid_http_url(url):
        return invalid_url_response()

    result = await service.scrape(url, debug=True)
    job = result.job
    domain_info = service.domain_table.get_domain_info(url)

    response = {
        'success': result.debug.success,
        'url': url,
        'totalTime': result.debug.total_time_ms,
        'successScore': success_score_label(job),
        'filledFields': job.filled_fields(),
        'domainInfo': domain_info.to_dict() if domain_info else None,
        'job': {
            'title': job.title,
            'company': job.company,
            'location': job.location,
            'hasDescription': bool(job.description),
            'descriptionLength': len(job.description or ''),
            'salary': job.salary,
            'source': job.source,
        },
    }
    if verbose:
        response['debug'] = result.debug.to_dict()
        response['fullJob'] = job.to_dict()
    return response


@router.post("/api/jobs/parse/test")
async def parse_test_batch(body: BatchTestRequest):
    """Scrape up to five URLs sequentially and summarize the outcome."""
    if not body.urls:
        return JSONResponse(status_code=400, content={'error': 'urls must be a non-empty array'})
    if len(body.urls) > MAX_BATCH_URLS:
        return JSONResponse(
            status_code=400,
            content={'error': f'Maximum {MAX_BATCH_URLS} URLs allowed for batch testing'},
        )

    return await get_scraping_service().scrape_batch(body.urls, debug=body.verbose)
