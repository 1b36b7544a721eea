# =======================================================================================
# vehicle_gate/services/tag_validator.py - Tag Authorization Cache
# =======================================================================================
import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional

from ..models.schemas import (
    AntennaConfig,
    Authorized,
    CacheStats,
    TagCacheEntry,
    TransportFailure,
    ValidationResult,
)
from ..utils.validators import TagFormatValidator
from .authorizer import Authorizer

logger = logging.getLogger(__name__)

BAD_FORMAT_REASON = "bad format"


class TagValidator:
    """Validates RFID tags against the access-control service, with a local decision cache."""

    def __init__(
        self,
        authorizer: Authorizer,
        antenna: AntennaConfig,
        cache_ttl: float = 300.0,
        cache_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.authorizer = authorizer
        self.antenna = antenna
        self._clock = clock

        # ----------------------------------------------------------------------
        # Decision cache
        # ----------------------------------------------------------------------
        # key = sanitized tag, kept in insertion order; eviction drops the
        # oldest inserted entry, reads do not reorder.
        self._cache: "OrderedDict[str, TagCacheEntry]" = OrderedDict()
        self._cache_ttl = cache_ttl
        self._cache_size = cache_size

        # one external lookup per tag at a time; concurrent reads share it
        self._pending: Dict[str, "asyncio.Task[ValidationResult]"] = {}

    # ----------------------------------------------------------------------
    # Cache helpers
    # ----------------------------------------------------------------------
    def _is_expired(self, entry: TagCacheEntry, now: float) -> bool:
        return now - entry.validated_at > self._cache_ttl

    def _get_cached_decision(self, tag: str) -> Optional[TagCacheEntry]:
        """Return the cached entry if still valid."""
        entry = self._cache.get(tag)
        if entry is None:
            return None

        if self._is_expired(entry, self._clock()):
            self._cache.pop(tag, None)
            return None
        return entry

    def _store_decision(self, tag: str, is_valid: bool) -> None:
        """Store a decision and trim the cache to its capacity."""
        self._cache[tag] = TagCacheEntry(tag=tag, validated_at=self._clock(), is_valid=is_valid)
        while len(self._cache) > self._cache_size:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug("[CACHE] Evicted tag %s (capacity %d)", evicted, self._cache_size)

    # ----------------------------------------------------------------------
    # Authorization
    # ----------------------------------------------------------------------
    async def authorize(self, raw_tag: str) -> ValidationResult:
        """Sanitize, validate, and authorize a tag. Fails closed on any doubt."""
        tag = TagFormatValidator.sanitize(raw_tag)
        if not TagFormatValidator.is_valid_format(tag):
            logger.warning("[AUTH] Rejected tag %r: %s", raw_tag, BAD_FORMAT_REASON)
            return ValidationResult(tag=tag, is_valid=False, reason=BAD_FORMAT_REASON)

        cached = self._get_cached_decision(tag)
        if cached is not None:
            logger.info("[AUTH] Tag %s served from cache (valid=%s)", tag, cached.is_valid)
            return ValidationResult(
                tag=tag,
                is_valid=cached.is_valid,
                reason="cache hit - authorized" if cached.is_valid else "cache hit - denied",
                cached=True,
            )

        pending = self._pending.get(tag)
        if pending is None:
            pending = asyncio.get_running_loop().create_task(self._lookup(tag))
            self._pending[tag] = pending
            pending.add_done_callback(lambda task: self._forget_pending(tag, task))
        else:
            logger.debug("[AUTH] Tag %s already being validated; waiting for that answer", tag)
        # a cancelled reader must not cancel the lookup other readers wait on
        return await asyncio.shield(pending)

    def _forget_pending(self, tag: str, task: asyncio.Task) -> None:
        if self._pending.get(tag) is task:
            del self._pending[tag]

    def cancel_pending(self) -> int:
        """Cancel every lookup still waiting on the authorizer (used on shutdown)."""
        tasks = [task for task in self._pending.values() if not task.done()]
        for task in tasks:
            task.cancel()
        self._pending.clear()
        return len(tasks)

    async def _lookup(self, tag: str) -> ValidationResult:
        """Ask the authorizer and cache a definite answer."""
        try:
            outcome = await self.authorizer.verify(tag, self.antenna)
        except Exception as e:
            logger.exception("[AUTH] Unexpected error validating tag %s", tag)
            return ValidationResult(tag=tag, is_valid=False, reason=f"validation error: {e}")

        if isinstance(outcome, TransportFailure):
            logger.error("[AUTH] Tag %s could not be validated: %s", tag, outcome.reason)
            return ValidationResult(tag=tag, is_valid=False, reason=outcome.reason)

        is_valid = isinstance(outcome, Authorized)
        self._store_decision(tag, is_valid)
        logger.info("[AUTH] Tag %s validated by %s (valid=%s)", tag, type(self.authorizer).__name__, is_valid)
        return ValidationResult(tag=tag, is_valid=is_valid, reason=outcome.reason)

    async def register_access(self, tag: str, antenna: Optional[AntennaConfig] = None) -> bool:
        """Record an access in the audit trail. Never revokes a granted access."""
        try:
            return await self.authorizer.register(tag, antenna or self.antenna)
        except Exception:
            logger.exception("[REGISTER] Unexpected error registering tag %s", tag)
            return False

    # ----------------------------------------------------------------------
    # Cache maintenance
    # ----------------------------------------------------------------------
    def clean_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [tag for tag, entry in self._cache.items() if self._is_expired(entry, now)]
        for tag in expired:
            del self._cache[tag]
        if expired:
            logger.info("[CACHE] Removed %d expired entries", len(expired))
        return len(expired)

    def invalidate(self, tag: str) -> bool:
        return self._cache.pop(TagFormatValidator.sanitize(tag), None) is not None

    def clear(self) -> int:
        removed = len(self._cache)
        self._cache.clear()
        logger.info("[CACHE] Validation cache cleared (%d entries)", removed)
        return removed

    def cache_stats(self) -> CacheStats:
        return CacheStats(size=len(self._cache), capacity=self._cache_size, ttl_seconds=self._cache_ttl)

    def __contains__(self, tag: str) -> bool:
        return self._get_cached_decision(TagFormatValidator.sanitize(tag)) is not None
