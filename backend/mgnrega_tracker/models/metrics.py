# backend/mgnrega_tracker/models/metrics.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

PROVENANCE_UPSTREAM = "upstream"
PROVENANCE_SYNTHETIC = "synthetic"

COUNTER_FIELDS = (
    "job_cards_issued",
    "active_job_cards",
    "active_workers",
    "households_worked",
    "person_days_total",
    "women_person_days",
    "sc_person_days",
    "st_person_days",
    "works_started",
    "works_completed",
    "works_in_progress",
)

DECIMAL_FIELDS = (
    "total_expenditure",
    "wage_expenditure",
    "material_expenditure",
    "average_payment_delay_days",
)

METRIC_FIELDS = COUNTER_FIELDS + DECIMAL_FIELDS


@dataclass(frozen=True)
class District:
    id: str
    code: str
    name: str
    state_code: str
    state_name: str
    latitude: float
    longitude: float
    name_hindi: Optional[str] = None
    population: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "nameHindi": self.name_hindi,
            "stateCode": self.state_code,
            "stateName": self.state_name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "population": self.population,
        }


@dataclass(frozen=True)
class MetricsRecord:
    """One district/month observation. None means the value is absent."""

    job_cards_issued: Optional[int] = None
    active_job_cards: Optional[int] = None
    active_workers: Optional[int] = None
    households_worked: Optional[int] = None
    person_days_total: Optional[int] = None
    women_person_days: Optional[int] = None
    sc_person_days: Optional[int] = None
    st_person_days: Optional[int] = None
    works_started: Optional[int] = None
    works_completed: Optional[int] = None
    works_in_progress: Optional[int] = None
    total_expenditure: Optional[float] = None
    wage_expenditure: Optional[float] = None
    material_expenditure: Optional[float] = None
    average_payment_delay_days: Optional[float] = None
    provenance: str = PROVENANCE_UPSTREAM

    def values(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in METRIC_FIELDS}


class CacheKey(NamedTuple):
    district_id: str
    financial_year: str
    month: int


@dataclass
class CacheEntry:
    id: Optional[int]
    district_id: str
    financial_year: str
    month: int
    metrics: MetricsRecord
    fetched_at: datetime
    is_stale: bool = False
    raw_data: Optional[Dict[str, Any]] = field(default=None)

    @property
    def key(self) -> CacheKey:
        return CacheKey(self.district_id, self.financial_year, self.month)

