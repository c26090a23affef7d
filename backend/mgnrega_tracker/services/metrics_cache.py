# backend/mgnrega_tracker/services/metrics_cache.py
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mgnrega_tracker.core.clock import as_utc
from mgnrega_tracker.core.exceptions import StoreUnavailable
from mgnrega_tracker.db.database import SessionLocal
from mgnrega_tracker.models.dataset import CachedMetricsRow
from mgnrega_tracker.models.metrics import CacheEntry, CacheKey, METRIC_FIELDS, MetricsRecord

logger = logging.getLogger(__name__)


def _to_entry(row: CachedMetricsRow) -> CacheEntry:
    values = {name: getattr(row, name) for name in METRIC_FIELDS}
    return CacheEntry(
        id=row.id,
        district_id=row.district_id,
        financial_year=row.financial_year,
        month=row.month,
        metrics=MetricsRecord(**values),
        fetched_at=as_utc(row.fetched_at),
        is_stale=bool(row.is_stale),
        raw_data=row.raw_data,
    )


def _apply(row: CachedMetricsRow, record: MetricsRecord, fetched_at: datetime, raw_data) -> None:
    for name, value in record.values().items():
        setattr(row, name, value)
    row.fetched_at = fetched_at
    row.is_stale = False
    row.raw_data = raw_data


class SqlMetricsCache:
    """
    Persistent cache of resolved metrics, one row per
    (district_id, financial_year, month).
    """

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    def get(self, district_id: str, financial_year: str, month: int) -> Optional[CacheEntry]:
        session = self._session_factory()
        try:
            row = session.query(CachedMetricsRow).filter_by(
                district_id=district_id,
                financial_year=financial_year,
                month=month,
            ).one_or_none()
            return _to_entry(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"cache lookup failed: {e}") from e
        finally:
            session.close()

    def upsert(self, key: CacheKey, record: MetricsRecord, fetched_at: datetime, raw_data=None) -> CacheEntry:
        """
        Insert or overwrite the row for ``key``. Last write wins; a concurrent
        insert of the same key is retried as an update.
        """
        for attempt in range(2):
            session = self._session_factory()
            try:
                row = session.query(CachedMetricsRow).filter_by(
                    district_id=key.district_id,
                    financial_year=key.financial_year,
                    month=key.month,
                ).one_or_none()
                if row is None:
                    row = CachedMetricsRow(
                        district_id=key.district_id,
                        financial_year=key.financial_year,
                        month=key.month,
                    )
                    session.add(row)
                _apply(row, record, fetched_at, raw_data)
                session.commit()
                session.refresh(row)
                return _to_entry(row)
            except IntegrityError as e:
                session.rollback()
                if attempt:
                    raise StoreUnavailable(f"cache upsert conflict: {e}") from e
                logger.info("Concurrent insert for %s, retrying as update", key)
            except SQLAlchemyError as e:
                session.rollback()
                raise StoreUnavailable(f"cache upsert failed: {e}") from e
            finally:
                session.close()

    def mark_stale(self, entry_id: int) -> None:
        session = self._session_factory()
        try:
            session.query(CachedMetricsRow).filter_by(id=entry_id).update({"is_stale": True})
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreUnavailable(f"marking cache entry {entry_id} stale failed: {e}") from e
        finally:
            session.close()

    def count(self) -> int:
        session = self._session_factory()
        try:
            return session.query(CachedMetricsRow).count()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"cache count failed: {e}") from e
        finally:
            session.close()
