# =============================================================================
# personio/cache.py  -  In-process TTL Response Cache
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Stores already-transformed operation results so repeated reads do not
#   spend upstream rate-limit budget.  Every entry expires; nothing is ever
#   returned after its expiry instant.
#
# NAMESPACES & DEFAULT LIFETIMES:
#   The namespace is recognised from a marker inside the key:
#     "employee"      -> short    (employee data changes during the day)
#     "organization"  -> medium   (departments change rarely)
#     "polic"         -> long     (reference data)
#     anything else   -> DEFAULT_TTL
#   An explicit `ttl` on set() always wins.
#
# KEYS:
#   cache_key("absences", {"status": "approved", "limit": 50}) produces
#   'absences:{"limit":50,"status":"approved"}'.  Parameters are serialized
#   canonically, so argument order in the caller never changes the key.
#   cache_key("absences") is 'absences:{}', the unparameterized namespace key
#   that mutations invalidate.  Parameterized variants are left to expire on
#   their own TTL.
# =============================================================================

import copy
import json
import logging
import time
from collections.abc import Callable
from typing import Any, Optional

from personio.config import CacheTTLConfig
from personio.models import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0
CHECK_PERIOD = 60.0

# Namespaces
EMPLOYEES = "employees"
EMPLOYEE = "employee"
ABSENCES = "absences"
ATTENDANCES = "attendances"

# Fixed keys for unparameterized reads
ROSTER_KEY = "employees:roster"
CUSTOM_ATTRIBUTES_KEY = "employees:custom-attributes"
ORGANIZATION_STRUCTURE_KEY = "organization:structure"
ABSENCE_POLICY_KEY = "policies:absence-types"
DOCUMENT_CATEGORIES_KEY = "document:categories"


def _canonical(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_canonical(v) for v in value]
        scalar_types = {type(v) for v in items}
        # Filter lists like employee_ids=[3, 1] are sets semantically.
        if len(scalar_types) == 1 and scalar_types <= {int, float, str, bool}:
            return sorted(items)
        return items
    return value


def canonicalize(params: Optional[dict] = None) -> str:
    """Order-independent JSON for a parameter mapping (None values dropped)."""
    return json.dumps(
        _canonical(params or {}), sort_keys=True, separators=(",", ":"), default=str
    )


def cache_key(namespace: str, params: Optional[dict] = None) -> str:
    return f"{namespace}:{canonicalize(params)}"


class ResponseCache:
    """TTL-keyed result store with namespace-dependent default lifetimes."""

    def __init__(
        self,
        ttl_config: Optional[CacheTTLConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        check_period: float = CHECK_PERIOD,
    ):
        self.ttl_config = ttl_config or CacheTTLConfig()
        self._clock = clock
        self._check_period = check_period
        self._entries: dict[str, CacheEntry] = {}
        self._last_prune = clock()
        self.hits = 0
        self.misses = 0

    def default_ttl(self, key: str) -> float:
        if "employee" in key:
            return self.ttl_config.employees
        if "organization" in key:
            return self.ttl_config.organization
        if "polic" in key:
            return self.ttl_config.policies
        return DEFAULT_TTL

    def get(self, key: str) -> Any:
        """Return a copy of the cached value, or None when absent or expired."""
        entry = self._live_entry(key)
        if entry is None:
            self.misses += 1
            logger.debug(f"cache miss: {key}")
            return None
        self.hits += 1
        logger.debug(f"cache hit: {key}")
        return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        now = self._clock()
        lifetime = ttl if ttl is not None else self.default_ttl(key)
        self._entries[key] = CacheEntry(
            key=key, value=copy.deepcopy(value), expires_at=now + lifetime
        )
        if now - self._last_prune >= self._check_period:
            self.prune()
        return True

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
        if removed:
            logger.debug(f"cache invalidated {removed} key(s): {', '.join(keys)}")
        return removed

    def flush(self) -> None:
        self._entries.clear()

    def prune(self) -> int:
        """Evict every expired entry; return how many were dropped."""
        now = self._clock()
        self._last_prune = now
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def keys(self) -> list[str]:
        now = self._clock()
        return [key for key, entry in self._entries.items() if not entry.is_expired(now)]

    @property
    def stats(self) -> dict:
        return {"keys": len(self.keys()), "hits": self.hits, "misses": self.misses}

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry
