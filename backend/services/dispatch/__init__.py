"""
Ride dispatch and trip safety service.

This module handles:
    - Requesting on-demand rides from a driver
    - Driver accept / decline and response timeouts
    - Ride start / completion with actual-fare recomputation
    - Trip sharing, SOS alerts and incident reports
"""

from .ride_dispatch import (
    PROVIDER_TIMEOUT_REASON,
    request_ride,
    respond_to_ride,
    start_ride,
    complete_ride,
    expire_ride_request,
    expire_stale_ride_requests,
)
from .safety import (
    share_trip,
    trigger_sos,
    report_incident,
    resolve_incident,
    tracking_link,
)

__all__ = [
    "PROVIDER_TIMEOUT_REASON",
    "request_ride",
    "respond_to_ride",
    "start_ride",
    "complete_ride",
    "expire_ride_request",
    "expire_stale_ride_requests",
    "share_trip",
    "trigger_sos",
    "report_incident",
    "resolve_incident",
    "tracking_link",
]
