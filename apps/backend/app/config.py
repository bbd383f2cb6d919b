import os

from core.domain_config import DEFAULT_CONFIG_PATH
from core.net import DEFAULT_READER_URL


class Settings:
    """Environment-driven settings. Values are read on every call so tests can patch os.environ."""

    @staticmethod
    def env() -> str:
        return os.getenv("JOBLENS_ENV", "production").lower()

    @staticmethod
    def is_dev() -> bool:
        return Settings.env() == "dev"

    @staticmethod
    def headless() -> bool:
        return os.getenv("JOBLENS_HEADLESS", "true").lower() != "false"

    @staticmethod
    def reader_proxy_url() -> str:
        return os.getenv("JOBLENS_READER_PROXY_URL", DEFAULT_READER_URL)

    @staticmethod
    def domains_config() -> str:
        return os.getenv("JOBLENS_DOMAINS_CONFIG", str(DEFAULT_CONFIG_PATH))

    @staticmethod
    def log_level() -> str:
        return os.getenv("JOBLENS_LOG_LEVEL", "INFO").upper()

    @staticmethod
    def rate_limit_parse() -> str:
        return os.getenv("RATE_LIMIT_PARSE", "10/minute")

    @classmethod
    def as_dict(cls) -> dict:
        return {
            "env": cls.env(),
            "headless": cls.headless(),
            "readerProxyUrl": cls.reader_proxy_url(),
            "domainsConfig": cls.domains_config(),
            "logLevel": cls.log_level(),
            "rateLimitParse": cls.rate_limit_parse(),
        }


def get_env_presence() -> dict:
    known_vars = [
        "JOBLENS_ENV",
        "JOBLENS_HEADLESS",
        "JOBLENS_READER_PROXY_URL",
        "JOBLENS_DOMAINS_CONFIG",
        "JOBLENS_LOG_LEVEL",
        "RATE_LIMIT_PARSE",
    ]

    return {var: bool(os.getenv(var)) for var in known_vars}
