"""
Point-of-interest moderation.

This module handles:
    - Normalizing and comparing POI names
    - Spatial + textual duplicate detection on submission
    - Moderator approve / reject overrides
"""

from .poi_dedup import (
    POIResult,
    classify_poi,
    find_nearby_pois,
    find_similar_pois,
    moderate_poi,
    names_are_similar,
    normalize_name,
    submit_poi,
)

__all__ = [
    "POIResult",
    "classify_poi",
    "find_nearby_pois",
    "find_similar_pois",
    "moderate_poi",
    "names_are_similar",
    "normalize_name",
    "submit_poi",
]
