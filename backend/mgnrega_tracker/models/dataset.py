
# backend/mgnrega_tracker/models/dataset.py
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, JSON, Numeric, Float, Boolean,
    ForeignKey, UniqueConstraint, Index,
)
from sqlalchemy.sql import func
from mgnrega_tracker.db.database import Base


class DistrictRow(Base):
    __tablename__ = "districts"
    id = Column(String(64), primary_key=True)
    code = Column(String(32), unique=True, index=True, nullable=False)
    name = Column(String(128), index=True, nullable=False)
    name_hindi = Column(String(128))
    state_code = Column(String(8), index=True, nullable=False)
    state_name = Column(String(128), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    population = Column(BigInteger)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CachedMetricsRow(Base):
    __tablename__ = "cached_mgnrega_data"
    id = Column(Integer, primary_key=True, autoincrement=True)
    district_id = Column(String(64), ForeignKey("districts.id"), nullable=False)
    financial_year = Column(String(7), nullable=False)
    month = Column(Integer, nullable=False)

    job_cards_issued = Column(BigInteger)
    active_job_cards = Column(BigInteger)
    active_workers = Column(BigInteger)
    households_worked = Column(BigInteger)
    person_days_total = Column(BigInteger)
    women_person_days = Column(BigInteger)
    sc_person_days = Column(BigInteger)
    st_person_days = Column(BigInteger)
    works_started = Column(BigInteger)
    works_completed = Column(BigInteger)
    works_in_progress = Column(BigInteger)

    total_expenditure = Column(Numeric(20, 2, asdecimal=False))
    wage_expenditure = Column(Numeric(20, 2, asdecimal=False))
    material_expenditure = Column(Numeric(20, 2, asdecimal=False))
    average_payment_delay_days = Column(Numeric(8, 2, asdecimal=False))

    fetched_at = Column(DateTime(timezone=True), nullable=False, index=True)
    is_stale = Column(Boolean, nullable=False, default=False)
    raw_data = Column(JSON)

    __table_args__ = (
        UniqueConstraint("district_id", "financial_year", "month", name="uq_district_period"),
        Index("ix_cached_district_time", "district_id", "financial_year", "month"),
    )
