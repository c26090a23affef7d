# backend/mgnrega_tracker/services/district_store.py
import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from mgnrega_tracker.core.exceptions import StoreUnavailable
from mgnrega_tracker.db.database import SessionLocal
from mgnrega_tracker.models.dataset import DistrictRow
from mgnrega_tracker.models.metrics import District

logger = logging.getLogger(__name__)

# Served by the district listing when the database is down
FALLBACK_DISTRICTS = [
    District("fb-1", "UP001", "Agra", "UP", "Uttar Pradesh", 27.1767, 78.0081, "आगरा", 1746467),
    District("fb-2", "UP002", "Aligarh", "UP", "Uttar Pradesh", 27.8974, 78.0880, "अलीगढ़", 3673849),
    District("fb-3", "UP003", "Allahabad", "UP", "Uttar Pradesh", 25.4358, 81.8463, "इलाहाबाद", 5954391),
    District("fb-4", "UP004", "Varanasi", "UP", "Uttar Pradesh", 25.3176, 82.9739, "वाराणसी", 3676841),
    District("fb-5", "UP005", "Lucknow", "UP", "Uttar Pradesh", 26.8467, 80.9462, "लखनऊ", 4588455),
    District("fb-6", "MH001", "Mumbai", "MH", "Maharashtra", 19.0760, 72.8777, "मुंबई", 12442373),
    District("fb-7", "MH002", "Pune", "MH", "Maharashtra", 18.5204, 73.8567, "पुणे", 9429408),
    District("fb-8", "BR001", "Patna", "BR", "Bihar", 25.5941, 85.1376, "पटना", 5838465),
    District("fb-9", "BR002", "Gaya", "BR", "Bihar", 24.7955, 84.9994, "गया", 4391418),
    District("fb-10", "WB001", "Kolkata", "WB", "West Bengal", 22.5726, 88.3639, "कोलकाता", 14112536),
]


def filter_fallback_districts(search: Optional[str] = None) -> List[District]:
    if not search:
        return list(FALLBACK_DISTRICTS)
    needle = search.lower()
    return [
        d for d in FALLBACK_DISTRICTS
        if needle in d.name.lower()
        or (d.name_hindi and search in d.name_hindi)
        or needle in d.code.lower()
    ]


def _to_district(row: DistrictRow) -> District:
    return District(
        id=row.id,
        code=row.code,
        name=row.name,
        state_code=row.state_code,
        state_name=row.state_name,
        latitude=row.latitude,
        longitude=row.longitude,
        name_hindi=row.name_hindi or None,
        population=row.population or None,
    )


class SqlDistrictStore:
    """Read-only access to the districts table."""

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    def find_by_id(self, district_id: str) -> Optional[District]:
        session = self._session_factory()
        try:
            row = session.get(DistrictRow, district_id)
            return _to_district(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"district lookup failed: {e}") from e
        finally:
            session.close()

    def find_all(self, search: Optional[str] = None) -> List[District]:
        session = self._session_factory()
        try:
            query = session.query(DistrictRow)
            if search:
                pattern = f"%{search}%"
                query = query.filter(or_(
                    DistrictRow.name.ilike(pattern),
                    DistrictRow.name_hindi.contains(search),
                    DistrictRow.code.ilike(pattern),
                ))
            return [_to_district(row) for row in query.order_by(DistrictRow.name).all()]
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"district listing failed: {e}") from e
        finally:
            session.close()

    def count(self) -> int:
        session = self._session_factory()
        try:
            return session.query(DistrictRow).count()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"district count failed: {e}") from e
        finally:
            session.close()
