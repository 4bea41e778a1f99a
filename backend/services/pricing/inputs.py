"""Assembles surge inputs from the weather and demand collaborators."""

import logging

from .demand import current_demand_ratio
from .surge import SurgeInputs
from .weather import get_current_condition

logger = logging.getLogger(__name__)


def build_surge_inputs(at, location=None, kind=None) -> SurgeInputs:
    """
    Best-effort: a failing collaborator degrades to "no bump" for its input.
    """
    weather = None
    if location is not None:
        try:
            weather = get_current_condition(location)
        except Exception:
            logger.exception("Weather lookup failed; pricing without weather surge")

    demand = None
    if kind is not None:
        try:
            demand = current_demand_ratio(kind)
        except Exception:
            logger.exception("Demand ratio lookup failed; pricing without demand surge")

    return SurgeInputs(at=at, weather=weather, demand_ratio=demand)
