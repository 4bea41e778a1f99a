from django.conf import settings
from django.db import models


class POICategory(models.TextChoices):
    ATTRACTION = 'attraction', 'Attraction'
    HISTORICAL = 'historical', 'Historical Site'
    NATURE = 'nature', 'Nature'
    BEACH = 'beach', 'Beach'
    RELIGIOUS = 'religious', 'Religious Site'
    RESTAURANT = 'restaurant', 'Restaurant'
    ACCOMMODATION = 'accommodation', 'Accommodation'
    SHOPPING = 'shopping', 'Shopping'
    OTHER = 'other', 'Other'


class POIStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    INACTIVE = 'inactive', 'Inactive'


class ApprovalStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    NEEDS_REVIEW = 'needs_review', 'Needs Review'
    REJECTED = 'rejected', 'Rejected'


class PointOfInterest(models.Model):
    """User-submitted place, auto-classified for duplicates on creation"""

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    category = models.CharField(max_length=20, choices=POICategory.choices, default=POICategory.OTHER)
    latitude = models.DecimalField(max_digits=10, decimal_places=8)
    longitude = models.DecimalField(max_digits=11, decimal_places=8)
    address = models.TextField(blank=True, default='')
    city = models.CharField(max_length=100, blank=True, default='')
    images = models.JSONField(default=list)
    tags = models.JSONField(default=list, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='submitted_pois'
    )

    status = models.CharField(max_length=10, choices=POIStatus.choices, default=POIStatus.ACTIVE)
    approval_status = models.CharField(
        max_length=20, choices=ApprovalStatus.choices, default=ApprovalStatus.PENDING
    )
    rejection_reason = models.TextField(blank=True, default='')
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'points_of_interest'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['latitude', 'longitude']),
            models.Index(fields=['approval_status']),
        ]

    def __str__(self):
        return f"{self.name} ({self.get_approval_status_display()})"

    @property
    def location(self):
        from common.utils import Location
        return Location(float(self.latitude), float(self.longitude))
