# =============================================================================
# personio/config.py  -  Server Configuration
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Holds every tunable of the access-control plane in plain dataclasses and
#   knows how to build them from environment variables.
#
# ENVIRONMENT VARIABLES:
#   PERSONIO_API_KEY          static key auth (v1 "App ID")
#   PERSONIO_CLIENT_ID        OAuth2 client credentials auth (v2)
#   PERSONIO_CLIENT_SECRET
#   PERSONIO_API_URL          upstream origin (default https://api.personio.de)
#   PERSONIO_TIMEOUT          transport timeout in seconds (default 30)
#   CACHE_TTL_EMPLOYEES       seconds (default 300)
#   CACHE_TTL_ORGANIZATION    seconds (default 3600)
#   CACHE_TTL_POLICIES        seconds (default 86400)
#   RATE_LIMIT_PER_MINUTE     upstream calls started per minute (default 60)
#   RATE_LIMIT_BURST          simultaneous upstream calls (default 15)
#
#   main.py calls load_dotenv() first, so a local .env file works too.
#
# AUTH MODES ARE EXCLUSIVE:
#   Either a static key OR a client id/secret pair.  Setting both (or
#   neither) is a ConfigurationError, raised before the server starts.
# =============================================================================

import logging
import math
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from personio.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.personio.de"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_TOKEN_SAFETY_MARGIN = 300.0


@dataclass
class CacheTTLConfig:
    """Default lifetimes (seconds) per cache namespace."""

    employees: float = 300
    organization: float = 3600
    policies: float = 86400


@dataclass
class RateLimitConfig:
    requests_per_minute: int = 60
    burst_concurrency: int = 15


@dataclass
class PersonioConfig:
    static_key: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    api_base_url: str = DEFAULT_API_BASE_URL
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    token_safety_margin: float = DEFAULT_TOKEN_SAFETY_MARGIN
    cache_ttl: CacheTTLConfig = field(default_factory=CacheTTLConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    @property
    def uses_static_key(self) -> bool:
        return bool(self.static_key)

    def validate(self) -> "PersonioConfig":
        """Check auth mode exclusivity and numeric bounds; return self."""
        has_client = bool(self.client_id) or bool(self.client_secret)
        if self.static_key and has_client:
            raise ConfigurationError(
                "Configure either PERSONIO_API_KEY or PERSONIO_CLIENT_ID/PERSONIO_CLIENT_SECRET, not both"
            )
        if not self.static_key:
            missing = [
                name
                for name, value in (
                    ("PERSONIO_CLIENT_ID", self.client_id),
                    ("PERSONIO_CLIENT_SECRET", self.client_secret),
                )
                if not value
            ]
            if missing:
                raise ConfigurationError(
                    f"Missing required environment variables: {', '.join(missing)}"
                )

        if self.rate_limit.requests_per_minute < 1:
            raise ConfigurationError("rate_limit.requests_per_minute must be at least 1")
        if self.rate_limit.burst_concurrency < 1:
            raise ConfigurationError("rate_limit.burst_concurrency must be at least 1")
        for name in ("employees", "organization", "policies"):
            if getattr(self.cache_ttl, name) <= 0:
                raise ConfigurationError(f"cache_ttl.{name} must be positive")
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")

        self.api_base_url = self.api_base_url.rstrip("/")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PersonioConfig":
        env = os.environ if environ is None else environ

        cache_defaults = CacheTTLConfig()
        rate_defaults = RateLimitConfig()

        config = cls(
            static_key=env.get("PERSONIO_API_KEY") or None,
            client_id=env.get("PERSONIO_CLIENT_ID") or None,
            client_secret=env.get("PERSONIO_CLIENT_SECRET") or None,
            api_base_url=env.get("PERSONIO_API_URL") or DEFAULT_API_BASE_URL,
            timeout=_env_number(env, "PERSONIO_TIMEOUT", float, DEFAULT_TIMEOUT_SECONDS),
            cache_ttl=CacheTTLConfig(
                employees=_env_number(env, "CACHE_TTL_EMPLOYEES", float, cache_defaults.employees),
                organization=_env_number(env, "CACHE_TTL_ORGANIZATION", float, cache_defaults.organization),
                policies=_env_number(env, "CACHE_TTL_POLICIES", float, cache_defaults.policies),
            ),
            rate_limit=RateLimitConfig(
                requests_per_minute=_env_number(
                    env, "RATE_LIMIT_PER_MINUTE", int, rate_defaults.requests_per_minute
                ),
                burst_concurrency=_env_number(
                    env, "RATE_LIMIT_BURST", int, rate_defaults.burst_concurrency
                ),
            ),
        )
        return config.validate()


def _env_number(env: Mapping[str, str], name: str, cast: Callable[[str], Any], default: Any) -> Any:
    """Read a positive number from the environment, falling back on bad input."""
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        value = None
    if value is None or (isinstance(value, float) and not math.isfinite(value)) or value <= 0:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using default {default}")
        return default
    return value
