import re
from datetime import date, datetime

FINANCIAL_YEAR_RE = re.compile(r"^(\d{4})-(\d{2})$")


def financial_year_for(day=None):
    """Indian financial year (April to March) containing ``day``, as "YYYY-YY"."""
    day = day or date.today()
    start = day.year if day.month >= 4 else day.year - 1
    return f"{start}-{(start + 1) % 100:02d}"


def is_financial_year(value):
    match = FINANCIAL_YEAR_RE.match(value or "")
    if not match:
        return False
    start, end = int(match.group(1)), int(match.group(2))
    return (start + 1) % 100 == end


def upstream_financial_year(financial_year):
    """data.gov.in filters on "2024-2025", we key on "2024-25"."""
    match = FINANCIAL_YEAR_RE.match(financial_year)
    if not match:
        return financial_year
    start = int(match.group(1))
    return f"{start}-{start + 1}"


def isoformat(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")
