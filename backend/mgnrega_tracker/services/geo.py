"""
Geospatial helpers for "detect my district".

Handles:
- Haversine distance between two coordinates
- Nearest-candidate search over districts or fallback cities
- Degraded detection when the district store is down
"""
import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Callable, NamedTuple, Optional, Sequence

import requests

from mgnrega_tracker.core.exceptions import InvalidInput, StoreUnavailable
from mgnrega_tracker.models.metrics import District

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# Major cities used when the district table cannot be read
FALLBACK_CITIES = [
    {"name": "Mumbai", "state_name": "Maharashtra", "latitude": 19.0760, "longitude": 72.8777},
    {"name": "Delhi", "state_name": "Delhi", "latitude": 28.6139, "longitude": 77.2090},
    {"name": "Bengaluru", "state_name": "Karnataka", "latitude": 12.9716, "longitude": 77.5946},
    {"name": "Hyderabad", "state_name": "Telangana", "latitude": 17.3850, "longitude": 78.4867},
    {"name": "Chennai", "state_name": "Tamil Nadu", "latitude": 13.0827, "longitude": 80.2707},
    {"name": "Kolkata", "state_name": "West Bengal", "latitude": 22.5726, "longitude": 88.3639},
    {"name": "Pune", "state_name": "Maharashtra", "latitude": 18.5204, "longitude": 73.8567},
    {"name": "Ahmedabad", "state_name": "Gujarat", "latitude": 23.0225, "longitude": 72.5714},
]


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres (haversine)."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


class Nearest(NamedTuple):
    candidate: object
    distance: float


def _coords(candidate):
    if isinstance(candidate, dict):
        return candidate["latitude"], candidate["longitude"]
    return candidate.latitude, candidate.longitude


def find_nearest(latitude: float, longitude: float, candidates: Sequence) -> Optional[Nearest]:
    """
    Return the candidate closest to (latitude, longitude) and its distance.

    Candidates are objects with latitude/longitude attributes or dicts with
    those keys. The first candidate wins a tie. None on an empty sequence.
    """
    best = None
    for candidate in candidates:
        lat, lon = _coords(candidate)
        distance = calculate_distance(latitude, longitude, lat, lon)
        if best is None or distance < best.distance:
            best = Nearest(candidate, distance)
    return best


@dataclass(frozen=True)
class LocationMatch:
    district: District
    distance_km: float
    covered: bool
    source: str
    location_name: Optional[str] = None

    def to_dict(self):
        payload = {
            "district": self.district.to_dict(),
            "distance": self.distance_km,
            "covered": self.covered,
        }
        if self.location_name:
            payload["locationName"] = self.location_name
        return payload


def validate_coordinates(latitude, longitude):
    for value in (latitude, longitude):
        if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
            raise InvalidInput("Invalid coordinates")
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise InvalidInput("Invalid coordinates")


def _fallback_district(city) -> District:
    return District(
        id="fallback",
        code="FALLBACK",
        name=city["name"],
        state_code="FB",
        state_name=city["state_name"],
        latitude=city["latitude"],
        longitude=city["longitude"],
    )


def detect_district(
    latitude,
    longitude,
    store,
    coverage_radius_km: float = 50.0,
    geocoder: Optional[Callable[[float, float], str]] = None,
) -> LocationMatch:
    """
    Map a coordinate to the nearest known district.

    Falls back to the nearest major city when the store is unreachable or
    empty. ``covered`` tells the caller whether the match lies within
    ``coverage_radius_km``.
    """
    validate_coordinates(latitude, longitude)

    try:
        districts = store.find_all()
    except StoreUnavailable as e:
        logger.warning("District store unavailable for location detection: %s", e)
        districts = []

    nearest = find_nearest(latitude, longitude, districts)
    if nearest is not None:
        return LocationMatch(
            district=nearest.candidate,
            distance_km=nearest.distance,
            covered=nearest.distance <= coverage_radius_km,
            source="database",
        )

    logger.info("Using fallback cities for (%.4f, %.4f)", latitude, longitude)
    nearest = find_nearest(latitude, longitude, FALLBACK_CITIES)
    location_name = None
    if geocoder is not None:
        try:
            location_name = geocoder(latitude, longitude)
        except Exception:
            logger.exception("Reverse geocoding failed")
    return LocationMatch(
        district=_fallback_district(nearest.candidate),
        distance_km=nearest.distance,
        covered=nearest.distance <= coverage_radius_km,
        source="fallback",
        location_name=location_name,
    )


def reverse_geocode(latitude: float, longitude: float, url: Optional[str], timeout: float = 5.0) -> str:
    """Best-effort human readable place name for a coordinate."""
    default = f"Location ({latitude:.2f}, {longitude:.2f})"
    if not url:
        return default

    params = {"latitude": latitude, "longitude": longitude, "localityLanguage": "en"}
    try:
        response = requests.get(url, params=params, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.warning("Reverse geocoding request failed: %s", e)
        return default

    if not isinstance(data, dict):
        return default
    return data.get("city") or data.get("locality") or data.get("principalSubdivision") or default
