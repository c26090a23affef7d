"""
Turns a data.gov.in MGNREGA record into a MetricsRecord.

The upstream schema has never been stable: the same value has shown up as
``Total_Households_Worked``, ``total_households_worked`` and friends, and
numbers arrive as ints, floats, comma-grouped strings or "NA". Field names
live in FIELD_ALIASES and unit conversions in UNIT_SCALES so a new naming
convention is a table edit, not a code change.
"""
import math
import re
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Sequence

from mgnrega_tracker.models.metrics import COUNTER_FIELDS, DECIMAL_FIELDS, MetricsRecord

# canonical field -> upstream keys, first present wins
FIELD_ALIASES: Dict[str, Sequence[str]] = {
    "job_cards_issued": ("job_cards_issued", "Total_No_of_JobCards_issued", "total_no_of_jobcards_issued"),
    "active_job_cards": ("active_job_cards", "Total_No_of_Active_Job_Cards", "total_no_of_active_job_cards"),
    "active_workers": ("active_workers", "Total_No_of_Active_Workers", "total_no_of_active_workers"),
    "households_worked": ("households_worked", "Total_Households_Worked", "total_households_worked", "Total_Households"),
    "person_days_total": ("person_days_total", "Persondays_of_Central_Liability_so_far", "persondays", "Persondays"),
    "women_person_days": ("women_person_days", "Women_Persondays", "women_persondays"),
    "sc_person_days": ("sc_person_days", "SC_persondays", "sc_persondays"),
    "st_person_days": ("st_person_days", "ST_persondays", "st_persondays"),
    "works_started": ("works_started", "Total_No_of_Works_Takenup", "total_no_of_works_takenup"),
    "works_completed": ("works_completed", "Number_of_Completed_Works", "number_of_completed_works"),
    "works_in_progress": ("works_in_progress", "Number_of_Ongoing_Works", "number_of_ongoing_works"),
    "total_expenditure": ("total_expenditure", "Total_Exp", "total_exp", "total_expenditure_in_rs"),
    "wage_expenditure": ("wage_expenditure", "Wages", "wages"),
    "material_expenditure": ("material_expenditure", "Material_and_skilled_Wages", "material_and_skilled_wages"),
    "average_payment_delay_days": ("average_payment_delay_days", "Average_Days_For_Payment", "average_days_for_payment"),
}

DISTRICT_CODE_ALIASES = ("district_code", "District_Code")
DISTRICT_NAME_ALIASES = ("district_name", "District_Name")
MONTH_ALIASES = ("month", "Month")

# Expenditure columns are published in lakhs of rupees
UNIT_SCALES: Dict[str, float] = {
    "total_expenditure": 100000,
    "wage_expenditure": 100000,
    "material_expenditure": 100000,
}

MISSING_MARKERS = {"", "NA", "N/A", "NULL", "NONE", "-", "NAN"}

_NON_DIGIT = re.compile(r"\D")
# one number, optionally wrapped in unit text ("Rs 100", "12 %")
_LABELLED_NUMBER = re.compile(r"^\D*?(?<![\d.])(-?\d+(?:\.\d+)?)\D*$")


def _is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().upper() in MISSING_MARKERS
    return False


def parse_int(value) -> Optional[int]:
    """Counter parsing: drop separators and the fractional part, never raise."""
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None

    text = str(value).strip()
    whole = text.split(".", 1)[0]
    digits = _NON_DIGIT.sub("", whole)
    if not digits:
        return None
    return int(digits)


def parse_decimal(value) -> Optional[float]:
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).replace(",", "").strip()
        try:
            number = float(text)
        except ValueError:
            match = _LABELLED_NUMBER.match(text)
            if match is None:
                return None
            number = float(match.group(1))
    return number if math.isfinite(number) else None


def lookup(raw: Mapping[str, Any], candidates: Sequence[str]):
    """
    First alias in ``raw`` holding a real value; exact match first, then
    case-insensitive. Aliases whose value is None/"NA" are skipped.
    """
    for key in candidates:
        if not _is_missing(raw.get(key)):
            return raw[key]
    lowered = {str(k).lower(): v for k, v in raw.items()}
    for key in candidates:
        if not _is_missing(lowered.get(key.lower())):
            return lowered[key.lower()]
    return None


def normalize_record(
    raw: Mapping[str, Any],
    aliases: Mapping[str, Sequence[str]] = FIELD_ALIASES,
    unit_scales: Mapping[str, float] = UNIT_SCALES,
) -> MetricsRecord:
    values = {}
    for name in COUNTER_FIELDS:
        values[name] = parse_int(lookup(raw, aliases.get(name, (name,))))
    for name in DECIMAL_FIELDS:
        number = parse_decimal(lookup(raw, aliases.get(name, (name,))))
        if number is not None and name in unit_scales:
            number = number * unit_scales[name]
        values[name] = number
    return MetricsRecord(**values)


def record_district_code(raw: Mapping[str, Any]) -> Optional[str]:
    code = lookup(raw, DISTRICT_CODE_ALIASES)
    if _is_missing(code):
        return None
    return str(code).strip()


MONTH_NAMES = {
    name: index
    for index, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"), start=1
    )
}


def record_month(raw: Mapping[str, Any]) -> Optional[int]:
    """Month of an upstream record as 1-12; accepts numbers and month names."""
    value = lookup(raw, MONTH_ALIASES)
    if _is_missing(value):
        return None
    text = str(value).strip()
    if text.isdigit():
        month = int(text)
        return month if 1 <= month <= 12 else None
    return MONTH_NAMES.get(text[:3].lower())


def fill_missing(record: MetricsRecord) -> MetricsRecord:
    """Zero out absent fields for callers that need to do arithmetic."""
    defaults = {}
    for name in COUNTER_FIELDS:
        if getattr(record, name) is None:
            defaults[name] = 0
    for name in DECIMAL_FIELDS:
        if getattr(record, name) is None:
            defaults[name] = 0.0
    return replace(record, **defaults)
