"""
Domain strategy table.
Reads scraping profiles from config/domains.yaml and maps a URL to the
ordered list of fetch strategies to try for it.
"""
import os
import yaml
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Any
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

SERVICES = ('http', 'browser')
PROXY_PROFILES = ('datacenter', 'residential')
BLOCKING_LEVELS = ('low', 'medium', 'high', 'extreme')

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / 'config' / 'domains.yaml'


@dataclass(frozen=True)
class ScrapingConfig:
    """One fetch strategy: which executor, and with what limits."""
    service: str
    js_rendering: bool = False
    proxy_profile: str = 'datacenter'
    retries: int = 1
    timeout_ms: int = 20000
    priority: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DomainProfile:
    domain_pattern: str
    configs: Tuple[ScrapingConfig, ...]
    blocking_level: str = 'low'
    requires_js: bool = False
    notes: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'domainPattern': self.domain_pattern,
            'blockingLevel': self.blocking_level,
            'requiresJs': self.requires_js,
            'notes': self.notes,
            'configs': [c.to_dict() for c in self.configs],
        }


DEFAULT_PROFILE = DomainProfile(
    domain_pattern='*',
    configs=(
        ScrapingConfig(service='http', js_rendering=False, retries=1, timeout_ms=20000, priority=1),
        ScrapingConfig(service='browser', js_rendering=True, retries=1, timeout_ms=30000, priority=2),
    ),
    blocking_level='medium',
    requires_js=False,
    notes='Generic fallback: plain HTTP first, browser rendering second',
)

# Cache of parsed profiles keyed by config path
_profile_cache: Dict[str, List[DomainProfile]] = {}
_table: Optional['DomainTable'] = None


def normalize_hostname(url: str) -> Optional[str]:
    """Lowercased hostname without a leading 'www.', or None if the URL has none."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    host = host.lower()
    if host.startswith('www.'):
        host = host[4:]
    return host


def _parse_config(raw: Dict[str, Any]) -> Optional[ScrapingConfig]:
    service = str(raw.get('service', '')).lower()
    if service not in SERVICES:
        logger.warning(f"[domains] Skipping config with unknown service: {raw}")
        return None

    proxy_profile = raw.get('proxy_profile', 'datacenter')
    if proxy_profile not in PROXY_PROFILES:
        logger.warning(f"[domains] Unknown proxy profile '{proxy_profile}', using datacenter")
        proxy_profile = 'datacenter'

    try:
        return ScrapingConfig(
            service=service,
            js_rendering=bool(raw.get('js_rendering', service == 'browser')),
            proxy_profile=proxy_profile,
            retries=max(0, int(raw.get('retries', 1))),
            timeout_ms=max(1000, int(raw.get('timeout_ms', 20000))),
            priority=int(raw.get('priority', 1)),
        )
    except (TypeError, ValueError) as e:
        logger.warning(f"[domains] Skipping malformed config {raw}: {e}")
        return None


def _parse_profile(raw: Dict[str, Any]) -> Optional[DomainProfile]:
    pattern = str(raw.get('domain', '')).strip().lower()
    if not pattern:
        logger.warning(f"[domains] Skipping profile without domain: {raw}")
        return None

    configs = [c for c in (_parse_config(item) for item in raw.get('configs') or []) if c]
    if not configs:
        logger.warning(f"[domains] Skipping profile '{pattern}' with no usable configs")
        return None

    blocking_level = raw.get('blocking_level', 'low')
    if blocking_level not in BLOCKING_LEVELS:
        blocking_level = 'low'

    return DomainProfile(
        domain_pattern=pattern,
        configs=tuple(sorted(configs, key=lambda c: c.priority)),
        blocking_level=blocking_level,
        requires_js=bool(raw.get('requires_js', False)),
        notes=str(raw.get('notes') or ''),
    )


def load_domain_profiles(config_path: Optional[str] = None) -> List[DomainProfile]:
    """Load domain profiles from YAML, caching per path."""
    path = Path(config_path or os.getenv('JOBLENS_DOMAINS_CONFIG') or DEFAULT_CONFIG_PATH)
    cache_key = str(path)

    if cache_key in _profile_cache:
        return _profile_cache[cache_key]

    profiles: List[DomainProfile] = []
    if not path.exists():
        logger.warning(f"[domains] Config file not found: {path}. Using generic default only.")
    else:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
            for raw in data.get('domains') or []:
                if isinstance(raw, dict):
                    profile = _parse_profile(raw)
                    if profile:
                        profiles.append(profile)
            logger.info(f"[domains] Loaded {len(profiles)} domain profiles from {path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"[domains] Error loading domain config {path}: {e}")
            profiles = []

    _profile_cache[cache_key] = profiles
    return profiles


class DomainTable:
    """Lookup of per-domain strategy profiles. All lookups are pure."""

    def __init__(self, profiles: Optional[List[DomainProfile]] = None,
                 default: DomainProfile = DEFAULT_PROFILE):
        self.profiles = list(profiles) if profiles is not None else load_domain_profiles()
        self.default = default

    def get_domain_info(self, url: str) -> Optional[DomainProfile]:
        """Matched profile for the URL, or None when only the default applies."""
        host = normalize_hostname(url)
        if not host:
            return None
        for profile in self.profiles:
            if profile.domain_pattern in host:
                return profile
        return None

    def resolve(self, url: str) -> DomainProfile:
        return self.get_domain_info(url) or self.default

    def strategy_for(self, url: str, attempt_index: int) -> ScrapingConfig:
        """
        Config to use for the given attempt.

        Out-of-range indices clamp to the last config (negative ones to the
        first), so this never raises.
        """
        configs = self.resolve(url).configs
        index = min(max(attempt_index, 0), len(configs) - 1)
        return configs[index]

    def max_attempts(self, url: str) -> int:
        return len(self.resolve(url).configs)

    def list_profiles(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.profiles]


def get_domain_table() -> DomainTable:
    """Get or create the global domain table"""
    global _table
    if _table is None:
        _table = DomainTable()
    return _table


def resolve(url: str) -> DomainProfile:
    return get_domain_table().resolve(url)


def strategy_for(url: str, attempt_index: int) -> ScrapingConfig:
    return get_domain_table().strategy_for(url, attempt_index)
