"""
Single place where a metrics query gets its defaults and validation.
"""
from dataclasses import dataclass
from typing import Optional

from mgnrega_tracker.core.clock import Clock, SystemClock
from mgnrega_tracker.core.exceptions import InvalidInput
from mgnrega_tracker.utils import financial_year_for, is_financial_year


@dataclass(frozen=True)
class MetricsRequest:
    district_id: str
    financial_year: str
    month: int


def _parse_month(month) -> int:
    if isinstance(month, bool):
        raise InvalidInput("Month must be between 1 and 12")
    if isinstance(month, str):
        month = month.strip()
        if not month.isdigit():
            raise InvalidInput("Month must be between 1 and 12")
        month = int(month)
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidInput("Month must be between 1 and 12")
    return month


def normalize_request(
    district_id,
    financial_year: Optional[str] = None,
    month=None,
    clock: Optional[Clock] = None,
) -> MetricsRequest:
    """Fill in the current financial year / month and validate everything."""
    if not isinstance(district_id, str) or not district_id.strip():
        raise InvalidInput("District ID is required")

    today = (clock or SystemClock()).now().date()

    if financial_year is None or (isinstance(financial_year, str) and not financial_year.strip()):
        financial_year = financial_year_for(today)
    elif not isinstance(financial_year, str) or not is_financial_year(financial_year.strip()):
        raise InvalidInput("Financial year must look like 2024-25")
    financial_year = financial_year.strip()

    if month is None or month == "":
        month = today.month
    month = _parse_month(month)

    return MetricsRequest(district_id=district_id.strip(), financial_year=financial_year, month=month)
