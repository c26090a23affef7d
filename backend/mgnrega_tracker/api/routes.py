from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse

from mgnrega_tracker.core.config import settings
from mgnrega_tracker.core.exceptions import InvalidInput, RateLimited, StoreUnavailable
from mgnrega_tracker.services.data_fetcher import DataGovMetricsProvider
from mgnrega_tracker.services.district_store import SqlDistrictStore, filter_fallback_districts
from mgnrega_tracker.services.geo import detect_district, reverse_geocode
from mgnrega_tracker.services.metrics_cache import SqlMetricsCache
from mgnrega_tracker.services.pipeline import MetricsResolver
from mgnrega_tracker.services.rate_limiter import RateLimiter, client_id_from


router = APIRouter()


# ---------- DEPENDENCIES ----------
@lru_cache
def get_district_store():
    return SqlDistrictStore()


@lru_cache
def get_metrics_cache():
    return SqlMetricsCache()


@lru_cache
def get_rate_limiter():
    return RateLimiter(
        max_requests=settings.RATE_LIMIT_REQUESTS,
        window_ms=settings.RATE_LIMIT_WINDOW_MS,
        max_clients=settings.RATE_LIMIT_MAX_CLIENTS,
    )


@lru_cache
def get_resolver():
    return MetricsResolver(
        district_store=get_district_store(),
        metrics_cache=get_metrics_cache(),
        provider=DataGovMetricsProvider(),
        rate_limiter=get_rate_limiter(),
        cache_ttl=timedelta(hours=settings.CACHE_TTL_HOURS),
    )


def _error(status_code, message):
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


# ---------- HEALTH ----------
@router.get("/api/v1/health")
def health(store=Depends(get_district_store), cache=Depends(get_metrics_cache)):
    now = datetime.now(timezone.utc).isoformat()
    try:
        districts = store.count()
        cached = cache.count()
    except StoreUnavailable as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "failed", "error": str(e), "time": now},
        )
    return {
        "status": "healthy",
        "database": "connected",
        "districts": districts,
        "cachedRecords": cached,
        "time": now,
    }


# ---------- DISTRICTS ----------
@router.get("/api/v1/districts")
def list_districts(search: Optional[str] = Query(None), store=Depends(get_district_store)):
    try:
        districts = store.find_all(search)
    except StoreUnavailable:
        fallback = filter_fallback_districts(search)
        return {
            "success": True,
            "data": [d.to_dict() for d in fallback],
            "source": "fallback",
        }
    return {"success": True, "data": [d.to_dict() for d in districts]}


# ---------- METRICS ----------
@router.get("/api/v1/metrics")
def metrics(
    request: Request,
    districtId: Optional[str] = Query(None),
    financialYear: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    resolver=Depends(get_resolver),
):
    client_id = client_id_from(
        request.headers.get("x-forwarded-for"),
        request.client.host if request.client else None,
    )
    try:
        result = resolver.resolve(client_id, districtId, financialYear, month)
    except RateLimited as e:
        return _error(429, str(e))
    except InvalidInput as e:
        return _error(400, str(e))
    return result.to_envelope()


# ---------- LOCATION ----------
def _geocoder():
    if not settings.REVERSE_GEOCODE_URL:
        return None
    return lambda lat, lon: reverse_geocode(lat, lon, settings.REVERSE_GEOCODE_URL)


@router.post("/api/v1/detect-district")
def detect(payload: dict = Body(...), store=Depends(get_district_store)):
    try:
        match = detect_district(
            payload.get("latitude"),
            payload.get("longitude"),
            store,
            coverage_radius_km=settings.COVERAGE_RADIUS_KM,
            geocoder=_geocoder(),
        )
    except InvalidInput as e:
        return _error(400, str(e))

    response = {"success": True, "data": match.to_dict()}
    if match.source == "fallback":
        response["source"] = "fallback"
    return response
