"""
Error taxonomy shared by every marketplace service.

Each error carries a stable ``error_code`` (rendered to API clients) and an
HTTP ``status_code`` taken from its category:

    - ValidationFailure     400  rejected before any state change
    - AuthorizationFailure  403  actor is not a party to the entity
    - NotFoundFailure       404  referenced entity does not exist
    - ConflictFailure       409  business rule refused the request
    - RateLimitFailure      429  shared counter exhausted
"""


class MarketplaceError(Exception):
    """Base class for all marketplace business errors."""

    error_code = "marketplace_error"
    status_code = 400
    default_message = "The request could not be completed."

    def __init__(self, message: str = "", **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


# ===================== Categories =====================

class ValidationFailure(MarketplaceError):
    error_code = "validation_error"
    status_code = 400


class AuthorizationFailure(MarketplaceError):
    error_code = "unauthorized"
    status_code = 403


class NotFoundFailure(MarketplaceError):
    error_code = "not_found"
    status_code = 404


class ConflictFailure(MarketplaceError):
    error_code = "conflict"
    status_code = 409


class RateLimitFailure(MarketplaceError):
    error_code = "rate_limited"
    status_code = 429


# ===================== Validation =====================

class InvalidCoordinate(ValidationFailure):
    """Raised when a latitude/longitude lies outside its valid range."""
    error_code = "invalid_coordinate"
    default_message = "Latitude must be within [-90, 90] and longitude within [-180, 180]."


class InvalidTimeWindow(ValidationFailure):
    """Raised when a booking window is malformed (end before start, no duration)."""
    error_code = "invalid_time_window"
    default_message = "The booking window is invalid."


class ProviderProfileNotAllowed(ValidationFailure):
    """Raised when a user without tier-2 verification submits a provider profile."""
    error_code = "verification_tier_required"
    default_message = "Identity verification tier 2 or higher is required."


class PartySizeExceeded(ValidationFailure):
    """Raised when the party is larger than a provider can take."""
    error_code = "party_size_exceeded"
    default_message = "The party is too large for the selected provider."


class InvalidRating(ValidationFailure):
    error_code = "invalid_rating"
    default_message = "Rating must be an integer from 1 to 5."


class MissingEvidence(ValidationFailure):
    """Raised when a point of interest is submitted without a photo."""
    error_code = "image_required"
    default_message = "Photo verification required. Please upload at least one image."


class OutsideServiceArea(ValidationFailure):
    error_code = "outside_service_area"
    default_message = "The location is outside the supported service area."


# ===================== Availability =====================

class ProviderUnavailable(ConflictFailure):
    """Raised when the provider is offline or has switched availability off."""
    error_code = "provider_unavailable"
    default_message = "The provider is currently unavailable."


class OutsideScheduledDays(ConflictFailure):
    """Raised when the requested weekday is not one of the provider's days."""
    error_code = "outside_scheduled_days"
    default_message = "The provider does not work on the requested day."


class OutsideWorkingHours(ConflictFailure):
    """Raised when the window is not contained in the provider's working hours."""
    error_code = "outside_working_hours"
    default_message = "The requested time is outside the provider's working hours."


class SchedulingConflict(ConflictFailure):
    """Raised when the window overlaps an occupying booking."""
    error_code = "scheduling_conflict"
    default_message = "The provider already has a booking in this time window."


# ===================== Booking lifecycle =====================

class Unauthorized(AuthorizationFailure):
    """Raised when the actor may not perform the action on this booking."""
    error_code = "unauthorized"
    default_message = "You are not allowed to perform this action."


class InvalidTransition(ConflictFailure):
    """Raised when the booking status does not allow the requested action."""
    error_code = "invalid_transition"
    default_message = "This action is not allowed in the booking's current status."


class CancellationWindowClosed(ConflictFailure):
    """Raised when cancelling within the cutoff before the booking starts."""
    error_code = "cancellation_window_closed"
    default_message = "Bookings can only be cancelled more than 2 hours before the start."


class NotCompleted(ConflictFailure):
    """Raised when rating a booking that has not been completed."""
    error_code = "not_completed"
    default_message = "Only completed bookings can be rated."


class AlreadyRated(ConflictFailure):
    """Raised when a booking already carries a rating."""
    error_code = "already_rated"
    default_message = "This booking has already been rated."


# ===================== Not found =====================

class BookingNotFound(NotFoundFailure):
    error_code = "booking_not_found"
    default_message = "Booking not found."


class ProviderNotFound(NotFoundFailure):
    error_code = "provider_not_found"
    default_message = "Provider not found."


class IncidentNotFound(NotFoundFailure):
    error_code = "incident_not_found"
    default_message = "Safety incident not found."


class POINotFound(NotFoundFailure):
    error_code = "poi_not_found"
    default_message = "Point of interest not found."


# ===================== Rate limiting =====================

class RateLimitExceeded(RateLimitFailure):
    """Raised when a per-key counter in the shared store is exhausted."""
    error_code = "rate_limit_exceeded"
    default_message = "Too many requests. Please slow down."
