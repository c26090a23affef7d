import logging
import time

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from mgnrega_tracker.core.config import settings
from mgnrega_tracker.core.exceptions import UpstreamUnavailable
from mgnrega_tracker.utils import upstream_financial_year

logger = logging.getLogger(__name__)

HEADERS = {"User-Agent": "MGNREGA-Performance-Tracker/1.0", "Accept": "application/json"}
UNFILTERED_LIMIT = 50


def get_session_with_retries(total=3, backoff=1.0):
    s = requests.Session()
    retries = Retry(
        total=total,
        backoff_factor=backoff,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"]
    )
    s.mount("https://", HTTPAdapter(max_retries=retries))
    s.mount("http://", HTTPAdapter(max_retries=retries))
    return s


def _records(data):
    records = data.get("records")
    if not isinstance(records, list):
        return []
    return [r for r in records if isinstance(r, dict)]


class DataGovMetricsProvider:
    """
    MGNREGA district records from data.gov.in.

    ``timeout`` is the budget for a whole ``fetch`` call, shared by the
    district-filtered request and the year-only retry. Each request gets
    what is left of it as its requests timeout, which bounds every socket
    connect/read separately: a server trickling bytes, or urllib3 backoff
    when ``retries`` > 0, can still overrun the budget. Retries are off
    unless UPSTREAM_RETRIES is set.
    """

    def __init__(self, api_key=None, dataset_url=None, timeout=None, retries=None, limit=None, session=None):
        self.api_key = api_key if api_key is not None else settings.API_KEY
        self.dataset_url = dataset_url or settings.DATASET_URL
        self.timeout = timeout if timeout is not None else settings.UPSTREAM_TIMEOUT_SECONDS
        self.limit = limit or settings.UPSTREAM_LIMIT
        self.session = session or get_session_with_retries(
            total=retries if retries is not None else settings.UPSTREAM_RETRIES,
            backoff=0.5,
        )

    def fetch(self, district_code, financial_year, month):
        """Raw records for the district/year. Never returns an empty list."""
        if not self.api_key or not self.dataset_url:
            raise UpstreamUnavailable("Missing API_KEY or DATASET_URL")

        deadline = time.monotonic() + self.timeout
        fin_year = upstream_financial_year(financial_year)
        logger.info("Fetching MGNREGA data for district %s, FY %s, month %s", district_code, financial_year, month)

        params = {"filters[fin_year]": fin_year, "limit": self.limit}
        if district_code and district_code != "unknown":
            params["filters[district_code]"] = district_code

        data = self._get(params, deadline)
        records = _records(data)
        if data.get("status") != "error" and records:
            return records

        logger.info("No records with district filter (%s), retrying by year only", data.get("message"))
        data = self._get({"filters[fin_year]": fin_year, "limit": UNFILTERED_LIMIT}, deadline)
        records = _records(data)
        if not records:
            raise UpstreamUnavailable(f"API returned no data: {data.get('message') or 'No records found'}")
        return records

    def _get(self, params, deadline):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise UpstreamUnavailable("Upstream time budget exhausted")

        query = {"api-key": self.api_key, "format": "json", **params}
        try:
            response = self.session.get(self.dataset_url, headers=HEADERS, params=query, timeout=remaining)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise UpstreamUnavailable(f"API request timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            raise UpstreamUnavailable(f"API request failed: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable(f"API returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable("API returned an unexpected payload")
        logger.info("API response status: %s, records: %s", data.get("status"), len(_records(data)))
        return data
