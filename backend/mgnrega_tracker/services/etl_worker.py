# backend/mgnrega_tracker/services/etl_worker.py
import argparse
import logging

from mgnrega_tracker.core.clock import SystemClock
from mgnrega_tracker.core.config import settings
from mgnrega_tracker.core.exceptions import StoreUnavailable, UpstreamUnavailable
from mgnrega_tracker.core.logging import setup_logging
from mgnrega_tracker.models.metrics import CacheKey
from mgnrega_tracker.services.data_fetcher import DataGovMetricsProvider
from mgnrega_tracker.services.district_store import SqlDistrictStore
from mgnrega_tracker.services.metrics_cache import SqlMetricsCache
from mgnrega_tracker.services.metrics_request import normalize_request
from mgnrega_tracker.services.normalizer import fill_missing, normalize_record
from mgnrega_tracker.services.pipeline import match_record

logger = logging.getLogger("etl")
logger.setLevel(logging.INFO)


def run_etl_once(financial_year=None, month=None, limit=None,
                 district_store=None, metrics_cache=None, provider=None, clock=None):
    """Refresh the cache for one period across every known district."""
    clock = clock or SystemClock()
    district_store = district_store or SqlDistrictStore()
    metrics_cache = metrics_cache or SqlMetricsCache()
    provider = provider or DataGovMetricsProvider()

    # district id is irrelevant here, only the period defaults matter
    period = normalize_request("etl", financial_year, month, clock=clock)
    summary = {"districts": 0, "cached": 0, "failed": 0}

    logger.info("Starting ETL fetch for FY %s month %s", period.financial_year, period.month)
    try:
        districts = district_store.find_all()
    except StoreUnavailable:
        logger.exception("Cannot list districts, aborting ETL")
        return summary

    if limit:
        districts = districts[:limit]
    summary["districts"] = len(districts)

    person_days = 0
    for district in districts:
        try:
            records = provider.fetch(district.code, period.financial_year, period.month)
            raw = match_record(records, district.code, period.month)
            record = normalize_record(raw)
            metrics_cache.upsert(
                CacheKey(district.id, period.financial_year, period.month),
                record,
                clock.now(),
                raw_data=dict(raw),
            )
        except (UpstreamUnavailable, StoreUnavailable) as e:
            summary["failed"] += 1
            logger.warning("Skipping %s (%s): %s", district.name, district.code, e)
            continue
        summary["cached"] += 1
        person_days += fill_missing(record).person_days_total

    logger.info(
        "ETL complete: %d/%d districts cached, %d failed, %d person-days",
        summary["cached"], summary["districts"], summary["failed"], person_days,
    )
    return summary


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Warm the MGNREGA metrics cache")
    parser.add_argument("--financial-year", help='e.g. "2024-25", defaults to the current one')
    parser.add_argument("--month", type=int, help="1-12, defaults to the current month")
    parser.add_argument("--limit", type=int, help="only process the first N districts")
    args = parser.parse_args()

    setup_logging(settings.LOG_LEVEL)
    run_etl_once(args.financial_year, args.month, args.limit)
