"""
Geographic utility functions.

This module provides the core geospatial calculations used throughout the
application: great-circle distance, radius containment and the coarse
bounding box used to pre-filter database scans before exact distances are
computed.
"""

from dataclasses import dataclass
from math import radians, cos, sin, asin, sqrt

from services.exceptions import InvalidCoordinate

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.0


@dataclass(frozen=True)
class Location:
    """Immutable latitude/longitude pair. Construction validates the ranges."""
    latitude: float
    longitude: float

    def __post_init__(self):
        validate_coordinates(self.latitude, self.longitude)
        object.__setattr__(self, "latitude", float(self.latitude))
        object.__setattr__(self, "longitude", float(self.longitude))

    @classmethod
    def from_values(cls, latitude, longitude) -> "Location":
        try:
            return cls(float(latitude), float(longitude))
        except (TypeError, ValueError):
            raise InvalidCoordinate("Invalid coordinates format")


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, location: Location) -> bool:
        return (
            self.min_lat <= location.latitude <= self.max_lat
            and self.min_lng <= location.longitude <= self.max_lng
        )


def validate_coordinates(latitude, longitude) -> None:
    """Raise InvalidCoordinate for out-of-range values. Never clamps."""
    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        raise InvalidCoordinate("Invalid coordinates format")

    if lat != lat or lng != lng:  # NaN
        raise InvalidCoordinate("Invalid coordinates format")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"Latitude must be between -90 and 90 (got {lat})")
    if not -180.0 <= lng <= 180.0:
        raise InvalidCoordinate(f"Longitude must be between -180 and 180 (got {lng})")


def distance_km(a: Location, b: Location) -> float:
    """
    Calculate the great-circle distance between two points using Haversine.

    Args:
        a: First location
        b: Second location

    Returns:
        Distance in kilometres (symmetric, zero for identical points)
    """
    validate_coordinates(a.latitude, a.longitude)
    validate_coordinates(b.latitude, b.longitude)

    lat1, lon1, lat2, lon2 = map(radians, [a.latitude, a.longitude, b.latitude, b.longitude])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # floating error can push h a hair above 1 for antipodal points
    c = 2 * asin(sqrt(min(1.0, h)))
    return c * EARTH_RADIUS_KM


def within_radius(origin: Location, target: Location, radius_km: float) -> bool:
    return distance_km(origin, target) <= radius_km


def bounding_box(origin: Location, radius_km: float) -> BoundingBox:
    """
    Approximate box around ``origin`` that contains every point within
    ``radius_km``. Uses 111 km per degree of latitude and scales longitude
    by cos(latitude). Only a pre-filter: callers must still apply
    ``within_radius`` to the survivors.
    """
    if radius_km < 0:
        raise ValueError("radius_km must be non-negative")

    lat_offset = radius_km / KM_PER_DEGREE_LAT
    cos_lat = abs(cos(radians(origin.latitude)))
    if cos_lat < 1e-9:
        # At the poles every longitude is within reach
        lng_offset = 180.0
    else:
        lng_offset = radius_km / (KM_PER_DEGREE_LAT * cos_lat)

    return BoundingBox(
        min_lat=max(-90.0, origin.latitude - lat_offset),
        max_lat=min(90.0, origin.latitude + lat_offset),
        min_lng=max(-180.0, origin.longitude - lng_offset),
        max_lng=min(180.0, origin.longitude + lng_offset),
    )
