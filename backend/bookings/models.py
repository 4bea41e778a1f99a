from django.conf import settings
from django.db import models
from django.db.models import F, Q


class BookingType(models.TextChoices):
    GUIDE = 'guide', 'Guide'
    DRIVER = 'driver', 'Driver'
    COMBINED = 'combined', 'Guide + Driver'
    RIDE = 'ride', 'Ride'


class BookingStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    CONFIRMED = 'confirmed', 'Confirmed'
    IN_PROGRESS = 'in_progress', 'In Progress'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'
    REFUNDED = 'refunded', 'Refunded'
    PARTIALLY_REFUNDED = 'partially_refunded', 'Partially Refunded'


class CancelledBy(models.TextChoices):
    REQUESTER = 'requester', 'Requester'
    PROVIDER = 'provider', 'Provider'
    ADMIN = 'admin', 'Admin'
    SYSTEM = 'system', 'System'


TERMINAL_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED)


class Booking(models.Model):
    """A guide, driver, combined or ride engagement"""

    booking_reference = models.CharField(max_length=20, unique=True)

    # Parties
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='bookings'
    )
    guide = models.ForeignKey(
        'providers.GuideProfile',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bookings'
    )
    driver = models.ForeignKey(
        'providers.DriverProfile',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bookings'
    )

    booking_type = models.CharField(max_length=10, choices=BookingType.choices)

    # Time window
    start = models.DateTimeField()
    end = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField()
    party_size = models.PositiveIntegerField(default=1)

    # Locations
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_address = models.TextField(blank=True, default='')
    dropoff_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    dropoff_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    dropoff_address = models.TextField(blank=True, default='')
    special_requests = models.TextField(blank=True, default='')

    # Pricing
    estimated_distance_km = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    surge_multiplier = models.DecimalField(max_digits=4, decimal_places=2, default=1)
    price_breakdown = models.JSONField(default=dict, blank=True)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    commission_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    final_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    fare_variance = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Status
    status = models.CharField(max_length=20, choices=BookingStatus.choices, default=BookingStatus.PENDING)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)

    # Cancellation
    cancelled_by = models.CharField(max_length=10, choices=CancelledBy.choices, blank=True, default='')
    cancelled_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    cancellation_reason = models.TextField(blank=True, default='')
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Rating (written once, after completion)
    rating = models.PositiveSmallIntegerField(null=True, blank=True)
    review = models.TextField(blank=True, default='')

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    rated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(end__gte=F('start')),
                name='booking_end_after_start',
            ),
            models.CheckConstraint(
                condition=Q(guide__isnull=False) | Q(driver__isnull=False),
                name='booking_names_a_provider',
            ),
        ]
        indexes = [
            models.Index(fields=['guide', 'status', 'start']),
            models.Index(fields=['driver', 'status', 'start']),
        ]

    def __str__(self):
        return f"Booking {self.booking_reference} - {self.booking_type} - {self.status}"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def providers(self):
        """Named provider profiles (guide first)."""
        return [p for p in (self.guide, self.driver) if p is not None]

    @property
    def provider_refs(self):
        return [p.ref for p in self.providers]

    @property
    def pickup_location(self):
        from common.utils import Location
        return Location(float(self.pickup_latitude), float(self.pickup_longitude))

    @property
    def dropoff_location(self):
        if self.dropoff_latitude is None or self.dropoff_longitude is None:
            return None
        from common.utils import Location
        return Location(float(self.dropoff_latitude), float(self.dropoff_longitude))


class IncidentType(models.TextChoices):
    SOS = 'sos', 'SOS'
    INCIDENT = 'incident', 'Incident'


class IncidentStatus(models.TextChoices):
    OPEN = 'open', 'Open'
    UNDER_REVIEW = 'under_review', 'Under Review'
    RESOLVED = 'resolved', 'Resolved'


class SafetyIncident(models.Model):
    """SOS alerts and incident reports. Never deleted, only resolved."""

    booking = models.ForeignKey(Booking, on_delete=models.PROTECT, related_name='incidents')
    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='reported_incidents'
    )
    incident_type = models.CharField(max_length=10, choices=IncidentType.choices)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    description = models.TextField(blank=True, default='')
    evidence = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=20, choices=IncidentStatus.choices, default=IncidentStatus.OPEN)

    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'safety_incidents'
        ordering = ['-created_at']

    def __str__(self):
        return f"Incident #{self.id} ({self.incident_type}) on {self.booking.booking_reference}"

    def delete(self, *args, **kwargs):
        raise NotImplementedError("Safety incidents are never deleted")
