"""
Scrape orchestrator: walks a domain's strategy list until a parser succeeds.

Every attempt is recorded as a ScrapeAttempt; the caller always gets a
ScrapeResult with a structurally valid ParsedJob, even when all strategies
failed.
"""
import time
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from core.domain_config import (
    DomainProfile, DomainTable, ScrapingConfig, get_domain_table, normalize_hostname,
)
from core.errors import ScrapeError, StrategyExhausted
from core.net import HTTPFetcher, is_valid_http_url
from crawler.browser_crawler import BrowserCrawler, get_browser_crawler
from pipeline.extractor import FetchHtml, ParsedJob, SCORE_FIELDS, parse_from_url

logger = logging.getLogger(__name__)

MAX_STRATEGIES_PER_URL = 4
ATTEMPT_BACKOFF_SECONDS = 1.0
BATCH_DELAY_SECONDS = 1.0

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class ScrapeAttempt:
    """Telemetry for one strategy tried against one URL"""
    config: ScrapingConfig
    started_at: str
    duration_ms: int
    success: bool
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    debug: Tuple[Dict[str, Any], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'service': self.config.service,
            'config': self.config.to_dict(),
            'startedAt': self.started_at,
            'durationMs': self.duration_ms,
            'success': self.success,
            'debug': list(self.debug),
        }
        if self.error_message:
            data['error'] = self.error_message
            data['errorType'] = self.error_type
        return data


@dataclass
class ScrapeDebug:
    attempts: List[ScrapeAttempt] = field(default_factory=list)
    total_time_ms: int = 0
    final_strategy: Optional[ScrapingConfig] = None
    domain_profile: Optional[DomainProfile] = None
    success: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'attempts': [a.to_dict() for a in self.attempts],
            'totalTimeMs': self.total_time_ms,
            'finalStrategy': self.final_strategy.to_dict() if self.final_strategy else None,
            'domainProfile': self.domain_profile.to_dict() if self.domain_profile else None,
            'success': self.success,
            'error': self.error,
        }


@dataclass
class ScrapeResult:
    job: ParsedJob
    debug: ScrapeDebug

    def to_dict(self) -> Dict[str, Any]:
        return {'job': self.job.to_dict(), 'debug': self.debug.to_dict()}


def success_score_label(job: ParsedJob) -> str:
    """'3/4' style count of the core fields that were found."""
    return f"{len(job.filled_fields())}/{len(SCORE_FIELDS)}"


class JobScrapingService:
    """Runs the strategy fallback loop for single URLs and small batches"""

    def __init__(
        self,
        domain_table: Optional[DomainTable] = None,
        http_fetcher: Optional[HTTPFetcher] = None,
        browser: Optional[BrowserCrawler] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.domain_table = domain_table or get_domain_table()
        self.http_fetcher = http_fetcher or HTTPFetcher()
        self._browser = browser
        self._sleep = sleep or asyncio.sleep

    @property
    def browser(self) -> BrowserCrawler:
        if self._browser is None:
            self._browser = get_browser_crawler()
        return self._browser

    def _fetcher_for(self, config: ScrapingConfig, executor_debug: List[Dict[str, Any]]) -> FetchHtml:
        """Fetch callable bound to one strategy; each fetch's debug is appended."""
        async def fetch_html(target_url: str) -> str:
            try:
                if config.service == 'browser':
                    result = await self.browser.fetch_html(target_url, config)
                else:
                    result = await self.http_fetcher.fetch_html(target_url)
            except ScrapeError as e:
                executor_debug.append(e.debug or {'url': target_url, 'error': str(e)})
                raise
            executor_debug.append(result.debug)
            return result.html

        return fetch_html

    async def scrape(self, url: str, debug: bool = False) -> ScrapeResult:
        """
        Scrape a job URL, falling back through the domain's strategies.

        Never raises (task cancellation excepted). On total failure the job
        degrades to apply URL plus source and debug.success is False. With
        debug set, each failed attempt's executor trace is also logged.
        """
        start_time = time.time()
        profile = self.domain_table.resolve(url)
        scrape_debug = ScrapeDebug(domain_profile=profile)

        if not is_valid_http_url(url):
            logger.warning(f"[scrape] Refusing invalid URL: {url[:100]}")
            scrape_debug.error = f"Invalid URL: {url[:100]}"
            return self._degraded(url, scrape_debug, start_time)

        max_attempts = min(len(profile.configs), MAX_STRATEGIES_PER_URL)
        logger.info(f"[scrape] {url[:100]} -> profile {profile.domain_pattern} ({max_attempts} strategies)")

        for attempt in range(max_attempts):
            config = self.domain_table.strategy_for(url, attempt)
            executor_debug: List[Dict[str, Any]] = []
            started_at = datetime.now(timezone.utc).isoformat()
            attempt_start = time.time()

            try:
                job = await parse_from_url(url, self._fetcher_for(config, executor_debug))
            except ScrapeError as e:
                self._record_failure(scrape_debug, config, started_at, attempt_start, executor_debug, e)
                logger.warning(
                    f"[scrape] Attempt {attempt + 1}/{max_attempts} ({config.service}) failed for {url[:100]}: "
                    f"{type(e).__name__}: {e}"
                )
                if debug:
                    logger.info(f"[scrape] Attempt trace: {scrape_debug.attempts[-1].to_dict()}")
            except Exception as e:
                self._record_failure(scrape_debug, config, started_at, attempt_start, executor_debug, e)
                logger.error(
                    f"[scrape] Unexpected error on attempt {attempt + 1}/{max_attempts} for {url[:100]}: {e}",
                    exc_info=True,
                )
            else:
                scrape_debug.attempts.append(ScrapeAttempt(
                    config=config,
                    started_at=started_at,
                    duration_ms=int((time.time() - attempt_start) * 1000),
                    success=True,
                    debug=tuple(executor_debug),
                ))
                scrape_debug.final_strategy = config
                scrape_debug.success = True
                scrape_debug.total_time_ms = int((time.time() - start_time) * 1000)
                logger.info(
                    f"[scrape] {url[:100]} succeeded with {config.service} on attempt {attempt + 1} "
                    f"({success_score_label(job)} fields, {scrape_debug.total_time_ms}ms)"
                )
                return ScrapeResult(job=job, debug=scrape_debug)

            if attempt < max_attempts - 1:
                await self._sleep(ATTEMPT_BACKOFF_SECONDS * (attempt + 1))

        exhausted = StrategyExhausted(
            f"All {max_attempts} scraping strategies failed for {url[:100]}",
            debug={'attempts': max_attempts},
        )
        scrape_debug.error = exhausted.message
        logger.warning(f"[scrape] {exhausted}")
        return self._degraded(url, scrape_debug, start_time)

    def _record_failure(self, scrape_debug: ScrapeDebug, config: ScrapingConfig, started_at: str,
                        attempt_start: float, executor_debug: List[Dict[str, Any]], error: Exception):
        if isinstance(error, ScrapeError) and error.debug and not any(d is error.debug for d in executor_debug):
            executor_debug.append(error.debug)
        scrape_debug.attempts.append(ScrapeAttempt(
            config=config,
            started_at=started_at,
            duration_ms=int((time.time() - attempt_start) * 1000),
            success=False,
            error_message=str(error),
            error_type=type(error).__name__,
            debug=tuple(executor_debug),
        ))

    def _degraded(self, url: str, scrape_debug: ScrapeDebug, start_time: float) -> ScrapeResult:
        scrape_debug.success = False
        scrape_debug.total_time_ms = int((time.time() - start_time) * 1000)
        job = ParsedJob(apply_url=url, source=normalize_hostname(url) or 'unknown')
        return ScrapeResult(job=job, debug=scrape_debug)

    async def scrape_batch(self, urls: List[str], debug: bool = False) -> Dict[str, Any]:
        """
        Scrape URLs one after another with a fixed pause between them.

        Returns per-URL summaries and an aggregate summary.
        """
        results = []
        for index, url in enumerate(urls):
            if index > 0:
                await self._sleep(BATCH_DELAY_SECONDS)

            result = await self.scrape(url, debug=debug)
            entry = {
                'url': url,
                'success': result.debug.success,
                'successScore': success_score_label(result.job),
                'filledFields': result.job.filled_fields(),
                'service': result.debug.final_strategy.service if result.debug.final_strategy else None,
                'attempts': len(result.debug.attempts),
                'totalTime': result.debug.total_time_ms,
                'job': result.job.to_dict(),
            }
            if debug:
                entry['debug'] = result.debug.to_dict()
            results.append(entry)

        successful = sum(1 for r in results if r['success'])
        total = len(results)
        summary = {
            'total': total,
            'successful': successful,
            'successRate': f"{round(successful / total * 100) if total else 0}%",
            'averageTime': round(sum(r['totalTime'] for r in results) / total) if total else 0,
            'totalAttempts': sum(r['attempts'] for r in results),
        }
        logger.info(f"[scrape] Batch of {total} finished: {successful} successful")
        return {'results': results, 'summary': summary}

    async def get_service_status(self) -> Dict[str, bool]:
        """Which executors are usable right now."""
        try:
            browser_ok = await self.browser.test_connection()
        except Exception as e:
            logger.warning(f"[scrape] Browser status probe failed: {e}")
            browser_ok = False
        return {'browser': browser_ok, 'http': True}


# Global instance
_service: Optional[JobScrapingService] = None


def get_scraping_service() -> JobScrapingService:
    """Get or create the scraping service"""
    global _service
    if _service is None:
        _service = JobScrapingService()
    return _service
