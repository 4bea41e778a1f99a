"""Common utility functions."""

from .geo import (
    Location,
    BoundingBox,
    distance_km,
    within_radius,
    bounding_box,
    validate_coordinates,
)

__all__ = [
    "Location",
    "BoundingBox",
    "distance_km",
    "within_radius",
    "bounding_box",
    "validate_coordinates",
]
