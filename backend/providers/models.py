from django.conf import settings
from django.db import models
from django.utils import timezone

User = settings.AUTH_USER_MODEL

WEEKDAYS = [
    'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday',
]


class ProviderKind(models.TextChoices):
    GUIDE = 'guide', 'Guide'
    DRIVER = 'driver', 'Driver'


class VerificationStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    VERIFIED = 'verified', 'Verified'
    REJECTED = 'rejected', 'Rejected'


class SubscriptionTier(models.TextChoices):
    BASIC = 'basic', 'Basic'
    PREMIUM = 'premium', 'Premium'


class ProviderProfile(models.Model):
    """Fields shared by every bookable provider (guides and drivers)"""

    kind = None  # set on concrete subclasses

    # Recurring weekly schedule
    available_days = models.JSONField(default=list)
    working_hours_start = models.TimeField()
    working_hours_end = models.TimeField()

    # Status & live location (mutated frequently by the provider client)
    is_online = models.BooleanField(default=False)
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(default=timezone.now)

    # Per-unit rates
    base_rate = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    per_km_rate = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    per_minute_rate = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    # Moderation & reputation
    verification_status = models.CharField(
        max_length=10, choices=VerificationStatus.choices, default=VerificationStatus.PENDING
    )
    rating = models.DecimalField(max_digits=3, decimal_places=1, default=0)
    total_reviews = models.PositiveIntegerField(default=0)
    total_completed = models.PositiveIntegerField(default=0)
    subscription_tier = models.CharField(
        max_length=10, choices=SubscriptionTier.choices, default=SubscriptionTier.BASIC
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED

    @property
    def schedule(self):
        from services.matching.availability import WeeklySchedule
        return WeeklySchedule(
            available_days=frozenset(day.lower() for day in self.available_days),
            start=self.working_hours_start,
            end=self.working_hours_end,
        )

    @property
    def location(self):
        if self.current_latitude is None or self.current_longitude is None:
            return None
        from common.utils import Location
        return Location(float(self.current_latitude), float(self.current_longitude))

    @property
    def ref(self):
        from services.matching.provider_ref import ProviderRef
        return ProviderRef(self.kind, self.pk)


class GuideProfile(ProviderProfile):
    """Guide-specific details"""

    kind = ProviderKind.GUIDE

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='guide_profile')
    languages = models.JSONField(default=list, blank=True)
    specializations = models.JSONField(default=list, blank=True)
    max_group_size = models.PositiveIntegerField(default=10)

    class Meta:
        db_table = 'guide_profiles'

    def __str__(self):
        return f"Guide {self.user.username}"


class DriverProfile(ProviderProfile):
    """Driver-specific details"""

    kind = ProviderKind.DRIVER

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')
    vehicle_type = models.CharField(max_length=20, default='standard')
    vehicle_number = models.CharField(max_length=20, unique=True)
    max_passengers = models.PositiveIntegerField(default=3)

    class Meta:
        db_table = 'driver_profiles'

    def __str__(self):
        return f"{self.user.username} - {self.vehicle_number}"
