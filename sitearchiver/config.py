"""Configuration dataclass for SiteArchiver."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .url_resolver import remove_default_port, union_url_parts

DEFAULT_PROTOCOL = "https"
DEFAULT_DOMAIN_BASE = "localhost"
DEFAULT_START_PATH = "/"
DEFAULT_PORT = 8080
DEFAULT_OUTPUT_DIR = "./site_archive"
DEFAULT_OVERWRITE = False
DEFAULT_INTERVAL_MS = 5000
DEFAULT_INTERVAL_FACTOR = 0.5
DEFAULT_TIMEOUT_MS = 60 * 1000
DEFAULT_MAX_RETRIES = 20
DEFAULT_HEADLESS = False
DEFAULT_VIEWPORT = (1280, 800)

SUCCESS_STATUS_CODES = frozenset({200})

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class CrawlParams:
    """Immutable configuration for one archive run."""

    protocol: str = DEFAULT_PROTOCOL
    domain_base: str = DEFAULT_DOMAIN_BASE
    domain_start: Optional[str] = None  # None = same as domain_base
    start_path: str = DEFAULT_START_PATH
    port: int = DEFAULT_PORT
    output_dir: str = DEFAULT_OUTPUT_DIR
    overwrite: bool = DEFAULT_OVERWRITE
    interval_ms: float = DEFAULT_INTERVAL_MS
    interval_factor: float = DEFAULT_INTERVAL_FACTOR
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    proxy: Optional[str] = None
    headless: bool = DEFAULT_HEADLESS
    record_har: bool = False
    viewport: tuple = DEFAULT_VIEWPORT
    strict_domain: bool = False  # exact host or subdomain instead of substring
    browser: bool = True  # Playwright rendering; False = plain HTTP via requests
    parser: str = "regex"  # link extraction: regex or soup
    max_pages: int = 0  # 0 = unlimited
    accept_cookies: bool = False

    @property
    def start_host(self) -> str:
        return self.domain_start or self.domain_base

    @property
    def seed_url(self) -> str:
        seed = union_url_parts(self.protocol, self.start_host, self.port, self.start_path)
        return remove_default_port(seed)

    @property
    def har_path(self) -> str:
        return os.path.join(self.output_dir, f"{self.domain_base}.har")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CrawlParams":
        """Build params from environment variables, falling back to defaults.

        Recognized variables: PROTOCOL, DOMAIN_BASE, DOMAIN_START, START_PATH,
        PORT, BASE_OUTPUT_DIR, OVERRIDES, INTERVAL_BETWEEN_REQUESTS,
        INTERVAL_FACTOR, TIMEOUT, MAX_RETRIES, PROXY, HEADLESS, RECORD_HAR,
        STRICT_DOMAIN.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        domain_base = env.get("DOMAIN_BASE") or DEFAULT_DOMAIN_BASE

        return cls(
            protocol=env.get("PROTOCOL") or DEFAULT_PROTOCOL,
            domain_base=domain_base,
            domain_start=env.get("DOMAIN_START") or domain_base,
            start_path=env.get("START_PATH") or DEFAULT_START_PATH,
            port=_env_number(env, "PORT", int, DEFAULT_PORT),
            output_dir=env.get("BASE_OUTPUT_DIR") or DEFAULT_OUTPUT_DIR,
            overwrite=_env_flag(env, "OVERRIDES", DEFAULT_OVERWRITE),
            interval_ms=_env_number(env, "INTERVAL_BETWEEN_REQUESTS", float, DEFAULT_INTERVAL_MS),
            interval_factor=_env_number(env, "INTERVAL_FACTOR", float, DEFAULT_INTERVAL_FACTOR),
            timeout_ms=_env_number(env, "TIMEOUT", int, DEFAULT_TIMEOUT_MS),
            max_retries=_env_number(env, "MAX_RETRIES", int, DEFAULT_MAX_RETRIES),
            proxy=env.get("PROXY") or None,
            headless=_env_flag(env, "HEADLESS", DEFAULT_HEADLESS),
            record_har=_env_flag(env, "RECORD_HAR", False),
            strict_domain=_env_flag(env, "STRICT_DOMAIN", False),
        )


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_number(env: Mapping[str, str], name: str, kind, default):
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return kind(value)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {value!r}") from None
