"""Geofence helpers - great-circle distance between a cleaner and a job address"""

import math
from dataclasses import dataclass

EARTH_RADIUS_METERS = 6371e3


@dataclass(frozen=True)
class GeofenceCheck:
    distance_m: float
    radius_m: float

    @property
    def within(self) -> bool:
        return is_within_radius(self.distance_m, self.radius_m)


def haversine_distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in meters"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def is_within_radius(distance_m: float, radius_m: float) -> bool:
    # The boundary itself counts as inside
    return distance_m <= radius_m


def check_geofence(
    job_lat: float, job_lng: float, lat: float, lng: float, radius_m: float
) -> GeofenceCheck:
    return GeofenceCheck(
        distance_m=haversine_distance_m(job_lat, job_lng, lat, lng),
        radius_m=radius_m,
    )
