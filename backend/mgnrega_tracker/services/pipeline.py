"""
Metrics resolution: answer "district X, financial year Y, month M" no matter
what the upstream API or the database are doing.

Order of preference for every request:

1. rate limit check (the only step besides validation that can refuse)
2. district lookup (store down -> continue with the raw id, no caching)
3. fresh cache row (younger than the TTL and not flagged stale)
4. live data.gov.in fetch, matched on district code, then cached
5. the old cache row, flagged stale
6. generated data

Any error during the live fetch moves on to step 5; anything else that goes
wrong after validation lands on step 6.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from mgnrega_tracker.core.clock import Clock, SystemClock
from mgnrega_tracker.core.exceptions import DataMismatch, RateLimited, StoreUnavailable, UpstreamUnavailable
from mgnrega_tracker.models.metrics import (
    CacheEntry, CacheKey, COUNTER_FIELDS, DECIMAL_FIELDS, PROVENANCE_SYNTHETIC, District,
)
from mgnrega_tracker.services.metrics_request import MetricsRequest, normalize_request
from mgnrega_tracker.services.normalizer import (
    DISTRICT_NAME_ALIASES, lookup, normalize_record, record_district_code, record_month,
)
from mgnrega_tracker.services.synthetic import generate_fallback_metrics, synthetic_raw_data
from mgnrega_tracker.utils import isoformat

logger = logging.getLogger(__name__)

SOURCE_CACHE = "cache"
SOURCE_LIVE = "live"
SOURCE_FALLBACK = "fallback"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass
class ResolvedMetrics:
    entry: CacheEntry
    source: str
    cached_at: datetime

    def to_envelope(self) -> Dict[str, Any]:
        """JSON-ready response. Counters go out as strings so no client truncates them."""
        metrics = self.entry.metrics
        data: Dict[str, Any] = {
            "id": self._entry_id(),
            "districtId": self.entry.district_id,
            "financialYear": self.entry.financial_year,
            "month": self.entry.month,
        }
        for name in COUNTER_FIELDS:
            value = getattr(metrics, name)
            data[_camel(name)] = str(value) if value is not None else None
        for name in DECIMAL_FIELDS:
            data[_camel(name)] = getattr(metrics, name)
        data.update(
            fetchedAt=isoformat(self.entry.fetched_at),
            isStale=self.entry.is_stale,
            provenance=metrics.provenance,
            rawData=self.entry.raw_data,
        )
        return {
            "success": True,
            "data": data,
            "source": self.source,
            "cachedAt": isoformat(self.cached_at),
        }

    def _entry_id(self) -> str:
        if self.entry.id is not None:
            return str(self.entry.id)
        prefix = "synthetic" if self.entry.metrics.provenance == PROVENANCE_SYNTHETIC else "api"
        return f"{prefix}-{self.entry.district_id}-{self.entry.financial_year}-{self.entry.month}"


class MetricsResolver:
    def __init__(
        self,
        district_store,
        metrics_cache,
        provider,
        rate_limiter,
        cache_ttl: timedelta = timedelta(hours=24),
        clock: Optional[Clock] = None,
    ):
        self.district_store = district_store
        self.metrics_cache = metrics_cache
        self.provider = provider
        self.rate_limiter = rate_limiter
        self.cache_ttl = cache_ttl
        self.clock = clock or SystemClock()

    def resolve(self, client_id: str, district_id, financial_year=None, month=None) -> ResolvedMetrics:
        """
        Raises RateLimited or InvalidInput; every other failure is turned
        into a degraded but successful result.
        """
        if not self.rate_limiter.allow(client_id):
            raise RateLimited("Rate limit exceeded. Please try again later.")

        request = normalize_request(district_id, financial_year, month, clock=self.clock)

        try:
            return self._resolve(request)
        except Exception:
            logger.exception("Metrics resolution failed for %s, using generated data", request.district_id)
            return self._synthetic(request)

    def _resolve(self, request: MetricsRequest) -> ResolvedMetrics:
        district = self._lookup_district(request.district_id)

        cached = None
        if district is not None:
            cached = self._cached_entry(district, request)
            if cached is not None and self._is_fresh(cached):
                logger.info("Returning fresh cache for %s", request.district_id)
                return ResolvedMetrics(cached, SOURCE_CACHE, cached.fetched_at)

        live = self._live(district, request)
        if live is not None:
            return live

        if cached is not None:
            return self._stale(cached)

        return self._synthetic(request)

    def _lookup_district(self, district_id: str) -> Optional[District]:
        try:
            return self.district_store.find_by_id(district_id)
        except StoreUnavailable as e:
            logger.warning("District store unavailable, continuing without cache: %s", e)
            return None

    def _cached_entry(self, district: District, request: MetricsRequest) -> Optional[CacheEntry]:
        try:
            return self.metrics_cache.get(district.id, request.financial_year, request.month)
        except StoreUnavailable as e:
            logger.warning("Cache lookup failed, proceeding to API/fallback: %s", e)
            return None

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return not entry.is_stale and self.clock.now() - entry.fetched_at <= self.cache_ttl

    def _live(self, district: Optional[District], request: MetricsRequest) -> Optional[ResolvedMetrics]:
        code = district.code if district is not None else request.district_id
        try:
            records = self.provider.fetch(code, request.financial_year, request.month)
            if not records:
                raise UpstreamUnavailable("API returned no records")
            raw = match_record(records, code, request.month)
            record = normalize_record(raw)
        except UpstreamUnavailable as e:
            logger.warning("Live fetch failed for %s: %s", code, e)
            return None
        except Exception:
            logger.exception("Unexpected error fetching live data for %s", code)
            return None

        logger.info(
            "Using record for district %s (code %s)",
            lookup(raw, DISTRICT_NAME_ALIASES) or "Unknown", code,
        )
        now = self.clock.now()

        if district is not None:
            key = CacheKey(district.id, request.financial_year, request.month)
            try:
                entry = self.metrics_cache.upsert(key, record, now, raw_data=dict(raw))
                return ResolvedMetrics(entry, SOURCE_LIVE, entry.fetched_at)
            except StoreUnavailable as e:
                logger.warning("Failed to cache API data, returning it uncached: %s", e)

        entry = CacheEntry(
            id=None,
            district_id=request.district_id,
            financial_year=request.financial_year,
            month=request.month,
            metrics=record,
            fetched_at=now,
            raw_data=dict(raw),
        )
        return ResolvedMetrics(entry, SOURCE_LIVE, now)

    def _stale(self, cached: CacheEntry) -> ResolvedMetrics:
        logger.info("Using stale cache for %s", cached.district_id)
        try:
            self.metrics_cache.mark_stale(cached.id)
            cached.is_stale = True
        except StoreUnavailable as e:
            logger.warning("Failed to mark cache entry %s as stale: %s", cached.id, e)
        return ResolvedMetrics(cached, SOURCE_FALLBACK, cached.fetched_at)

    def _synthetic(self, request: MetricsRequest) -> ResolvedMetrics:
        logger.info("Generating fallback data for %s", request.district_id)
        now = self.clock.now()
        entry = CacheEntry(
            id=None,
            district_id=request.district_id,
            financial_year=request.financial_year,
            month=request.month,
            metrics=generate_fallback_metrics(request.district_id, request.financial_year, request.month),
            fetched_at=now,
            raw_data=synthetic_raw_data(request.district_id, request.month),
        )
        return ResolvedMetrics(entry, SOURCE_FALLBACK, now)


def match_record(records, district_code: str, month: int):
    """
    The record belonging to ``district_code``, preferring one for ``month``.

    The API ignores filters at times and answers with other districts; that
    is a DataMismatch, never a reason to use somebody else's numbers.
    """
    matches = [r for r in records if record_district_code(r) == str(district_code)]
    if not matches:
        raise DataMismatch(f"No data found for district {district_code} in {len(records)} records")
    for raw in matches:
        if record_month(raw) == month:
            return raw
    return matches[0]
