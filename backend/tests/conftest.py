"""
Pytest configuration and fixtures for the tracker backend tests.
"""
import os

# Point the app at SQLite before anything imports the settings
os.environ["LOCAL_DATABASE_URL"] = "sqlite://"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("API_KEY", "test-key")

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mgnrega_tracker.core.clock import FakeClock
from mgnrega_tracker.core.exceptions import UpstreamUnavailable
from mgnrega_tracker.db.database import Base
from mgnrega_tracker.models.dataset import DistrictRow
from mgnrega_tracker.services.district_store import SqlDistrictStore
from mgnrega_tracker.services.metrics_cache import SqlMetricsCache
from mgnrega_tracker.services.pipeline import MetricsResolver
from mgnrega_tracker.services.rate_limiter import RateLimiter

NOW = datetime(2024, 11, 15, 12, 0, 0, tzinfo=timezone.utc)

DISTRICTS = [
    dict(id="d-lko", code="UP005", name="Lucknow", state_code="UP", state_name="Uttar Pradesh",
         latitude=26.8467, longitude=80.9462, name_hindi="लखनऊ", population=4588455),
    dict(id="d-knp", code="UP006", name="Kanpur", state_code="UP", state_name="Uttar Pradesh",
         latitude=26.4499, longitude=80.3319),
    dict(id="d-pat", code="BR001", name="Patna", state_code="BR", state_name="Bihar",
         latitude=25.5941, longitude=85.1376, name_hindi="पटना"),
]


def upstream_record(code="UP005", **overrides):
    """A data.gov.in style record as the API returns it."""
    record = {
        "fin_year": "2024-2025",
        "month": "Nov",
        "state_name": "UTTAR PRADESH",
        "district_code": code,
        "district_name": "LUCKNOW",
        "Total_No_of_JobCards_issued": "4,12,345",
        "Total_No_of_Active_Job_Cards": "250000",
        "Total_No_of_Active_Workers": "310500",
        "Total_Households_Worked": "98765",
        "Persondays_of_Central_Liability_so_far": "1234567",
        "Women_Persondays": "654321",
        "SC_persondays": "200000",
        "ST_persondays": "NA",
        "Total_No_of_Works_Takenup": "4500",
        "Number_of_Completed_Works": "3000",
        "Number_of_Ongoing_Works": "1500",
        "Total_Exp": "123.45",
        "Wages": "80.5",
        "Material_and_skilled_Wages": "42.95",
    }
    record.update(overrides)
    return record


class StubProvider:
    """Records calls; returns canned records or raises the configured error."""

    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error
        self.calls = []

    def fetch(self, district_code, financial_year, month):
        self.calls.append((district_code, financial_year, month))
        if self.error is not None:
            raise self.error
        return list(self.records)


class BrokenStore:
    """District store / metrics cache whose database is gone."""

    def __init__(self, error_cls):
        self.error_cls = error_cls

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise self.error_cls(f"{name}: database unreachable")
        return fail


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    session = factory()
    session.add_all(DistrictRow(**d) for d in DISTRICTS)
    session.commit()
    session.close()
    yield factory
    engine.dispose()


@pytest.fixture
def district_store(session_factory):
    return SqlDistrictStore(session_factory)


@pytest.fixture
def metrics_cache(session_factory):
    return SqlMetricsCache(session_factory)


@pytest.fixture
def rate_limiter(clock):
    return RateLimiter(max_requests=5, window_ms=60000, clock=clock)


@pytest.fixture
def failing_provider():
    return StubProvider(error=UpstreamUnavailable("API request timed out"))


@pytest.fixture
def make_resolver(district_store, metrics_cache, rate_limiter, clock):
    def _make(provider, store=None, cache=None, limiter=None):
        return MetricsResolver(
            district_store=store if store is not None else district_store,
            metrics_cache=cache if cache is not None else metrics_cache,
            provider=provider,
            rate_limiter=limiter if limiter is not None else rate_limiter,
            clock=clock,
        )
    return _make
