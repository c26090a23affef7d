"""
Tests for the metrics resolution pipeline: cache, live, stale and generated paths.
"""
from datetime import timedelta

import pytest

from conftest import NOW, BrokenStore, StubProvider, upstream_record
from mgnrega_tracker.core.exceptions import DataMismatch, InvalidInput, RateLimited, StoreUnavailable
from mgnrega_tracker.models.metrics import CacheKey, MetricsRecord
from mgnrega_tracker.services.pipeline import match_record
from mgnrega_tracker.services.rate_limiter import RateLimiter
from mgnrega_tracker.services.synthetic import generate_fallback_metrics

KEY = CacheKey("d-lko", "2024-25", 11)


def _resolve(resolver, district_id="d-lko"):
    return resolver.resolve("1.2.3.4", district_id, "2024-25", 11)


class TestFreshCache:

    def test_fresh_entry_served_without_upstream_call(self, make_resolver, metrics_cache):
        """A fresh entry is returned as-is with source=cache."""
        stored = metrics_cache.upsert(KEY, MetricsRecord(active_workers=777), NOW)
        provider = StubProvider(records=[upstream_record()])

        result = _resolve(make_resolver(provider))

        assert result.source == "cache"
        assert result.entry == stored
        assert result.cached_at == NOW
        assert provider.calls == []

    def test_entry_older_than_ttl_is_not_fresh(self, make_resolver, metrics_cache, clock):
        metrics_cache.upsert(KEY, MetricsRecord(active_workers=777), NOW - timedelta(hours=25))
        provider = StubProvider(records=[upstream_record()])

        result = _resolve(make_resolver(provider))

        assert result.source == "live"
        assert len(provider.calls) == 1

    def test_stale_flag_forces_refetch(self, make_resolver, metrics_cache):
        entry = metrics_cache.upsert(KEY, MetricsRecord(active_workers=777), NOW)
        metrics_cache.mark_stale(entry.id)
        provider = StubProvider(records=[upstream_record()])

        assert _resolve(make_resolver(provider)).source == "live"


class TestLiveFetch:

    def test_live_record_is_normalized_and_cached(self, make_resolver, metrics_cache):
        provider = StubProvider(records=[upstream_record("UP009"), upstream_record("UP005")])

        result = _resolve(make_resolver(provider))

        assert provider.calls == [("UP005", "2024-25", 11)]
        assert result.source == "live"
        assert result.entry.metrics.active_workers == 310500
        assert result.entry.metrics.st_person_days is None

        cached = metrics_cache.get(*KEY)
        assert cached is not None
        assert cached.metrics.active_workers == 310500
        assert cached.is_stale is False
        assert result.cached_at == cached.fetched_at == NOW

    def test_cache_write_failure_still_returns_live(self, make_resolver, district_store):
        class ReadOnlyCache:
            def get(self, *args):
                return None

            def upsert(self, *args, **kwargs):
                raise StoreUnavailable("disk full")

        result = _resolve(make_resolver(StubProvider(records=[upstream_record()]), cache=ReadOnlyCache()))

        assert result.source == "live"
        assert result.entry.id is None
        assert result.cached_at == NOW

    def test_mismatched_district_is_a_failure(self, make_resolver, metrics_cache):
        provider = StubProvider(records=[upstream_record("UP009"), upstream_record("BR001")])

        result = _resolve(make_resolver(provider))

        assert result.source == "fallback"
        assert result.entry.metrics.provenance == "synthetic"
        assert metrics_cache.get(*KEY) is None

    def test_empty_result_is_a_failure(self, make_resolver):
        result = _resolve(make_resolver(StubProvider(records=[])))
        assert result.source == "fallback"


class TestStaleCache:

    def test_old_entry_served_when_upstream_times_out(self, make_resolver, metrics_cache, failing_provider):
        fetched = NOW - timedelta(hours=48)
        metrics_cache.upsert(KEY, MetricsRecord(active_workers=555, total_expenditure=10.5), fetched)

        result = _resolve(make_resolver(failing_provider))

        assert result.source == "fallback"
        assert result.entry.metrics.active_workers == 555
        assert result.entry.metrics.total_expenditure == 10.5
        assert result.cached_at == fetched
        assert result.entry.is_stale is True
        assert metrics_cache.get(*KEY).is_stale is True

    def test_old_entry_served_when_provider_breaks_unexpectedly(self, make_resolver, metrics_cache):
        """Errors other than UpstreamUnavailable still reach the stale entry."""
        metrics_cache.upsert(KEY, MetricsRecord(active_workers=555), NOW - timedelta(hours=48))

        result = _resolve(make_resolver(StubProvider(error=RuntimeError("connection pool exploded"))))

        assert result.source == "fallback"
        assert result.entry.metrics.active_workers == 555
        assert result.entry.metrics.provenance == "upstream"
        assert result.entry.is_stale is True

    def test_failure_to_mark_stale_is_tolerated(self, make_resolver, metrics_cache, failing_provider):
        entry = metrics_cache.upsert(KEY, MetricsRecord(active_workers=555), NOW - timedelta(hours=48))

        class NoWriteCache:
            def get(self, *args):
                return entry

            def mark_stale(self, entry_id):
                raise StoreUnavailable("read only")

        result = _resolve(make_resolver(failing_provider, cache=NoWriteCache()))
        assert result.source == "fallback"
        assert result.entry.metrics.active_workers == 555


class TestSynthetic:

    def test_generated_when_nothing_else_works(self, make_resolver, failing_provider):
        result = _resolve(make_resolver(failing_provider))

        assert result.source == "fallback"
        assert result.cached_at == NOW
        assert result.entry.metrics == generate_fallback_metrics("d-lko", "2024-25", 11)
        assert result.entry.raw_data["source"] == "synthetic_fallback"

    def test_repeat_request_is_identical(self, make_resolver, failing_provider):
        resolver = make_resolver(failing_provider)
        first = _resolve(resolver).to_envelope()
        second = _resolve(resolver).to_envelope()
        assert first == second

    def test_store_down_skips_cache_entirely(self, make_resolver, failing_provider):
        cache = BrokenStore(StoreUnavailable)
        resolver = make_resolver(failing_provider, store=BrokenStore(StoreUnavailable), cache=cache)

        result = _resolve(resolver, "raw-id")

        assert failing_provider.calls == [("raw-id", "2024-25", 11)]
        assert result.source == "fallback"
        assert result.entry.district_id == "raw-id"

    def test_degraded_live_fetch_uses_raw_identifier(self, make_resolver):
        provider = StubProvider(records=[upstream_record("raw-id")])
        resolver = make_resolver(provider, store=BrokenStore(StoreUnavailable), cache=BrokenStore(StoreUnavailable))

        result = _resolve(resolver, "raw-id")

        assert result.source == "live"
        assert result.entry.id is None

    def test_unexpected_error_falls_back(self, make_resolver):
        provider = StubProvider(error=KeyError("surprise"))
        result = _resolve(make_resolver(provider))
        assert result.source == "fallback"
        assert result.entry.metrics.provenance == "synthetic"


class TestRequestGate:

    def test_rate_limited(self, make_resolver, failing_provider, clock):
        resolver = make_resolver(failing_provider, limiter=RateLimiter(max_requests=1, clock=clock))
        _resolve(resolver)
        with pytest.raises(RateLimited):
            _resolve(resolver)

    def test_rate_limited_before_any_lookup(self, make_resolver, failing_provider, clock):
        limiter = RateLimiter(max_requests=1, clock=clock)
        limiter.allow("1.2.3.4")
        resolver = make_resolver(failing_provider, limiter=limiter)
        with pytest.raises(RateLimited):
            _resolve(resolver)
        assert failing_provider.calls == []

    def test_missing_district(self, make_resolver, failing_provider):
        with pytest.raises(InvalidInput):
            make_resolver(failing_provider).resolve("1.2.3.4", None)

    def test_defaults_applied(self, make_resolver, failing_provider):
        result = make_resolver(failing_provider).resolve("1.2.3.4", "d-lko")
        assert (result.entry.financial_year, result.entry.month) == ("2024-25", 11)


class TestEnvelope:

    def test_counters_are_strings(self, make_resolver, metrics_cache):
        big = 2 ** 60 + 7
        metrics_cache.upsert(KEY, MetricsRecord(person_days_total=big, wage_expenditure=12.5), NOW)

        envelope = _resolve(make_resolver(StubProvider())).to_envelope()

        assert envelope["success"] is True
        assert envelope["source"] == "cache"
        assert envelope["cachedAt"] == "2024-11-15T12:00:00Z"
        data = envelope["data"]
        assert data["personDaysTotal"] == str(big)
        assert data["activeWorkers"] is None
        assert data["wageExpenditure"] == 12.5
        assert data["districtId"] == "d-lko"
        assert data["financialYear"] == "2024-25"
        assert data["fetchedAt"] == "2024-11-15T12:00:00Z"
        assert data["isStale"] is False

    def test_synthetic_id(self, make_resolver, failing_provider):
        envelope = _resolve(make_resolver(failing_provider)).to_envelope()
        assert envelope["data"]["id"] == "synthetic-d-lko-2024-25-11"
        assert envelope["data"]["provenance"] == "synthetic"


class TestMatchRecord:

    def test_prefers_requested_month(self):
        records = [upstream_record(month="Oct"), upstream_record(month="Nov")]
        assert match_record(records, "UP005", 11)["month"] == "Nov"

    def test_any_month_for_district(self):
        records = [upstream_record("UP009"), upstream_record(month="Oct")]
        assert match_record(records, "UP005", 11)["month"] == "Oct"

    def test_mismatch(self):
        with pytest.raises(DataMismatch):
            match_record([upstream_record("UP009")], "UP005", 11)
