from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with marketplace role and verification tier"""
    ROLE_CHOICES = [
        ('traveler', 'Traveler'),
        ('guide', 'Guide'),
        ('driver', 'Driver'),
        ('moderator', 'Moderator'),
        ('admin', 'Administrator'),
    ]

    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='traveler')
    phone_number = models.CharField(max_length=20, blank=True)
    # Identity verification happens upstream; tier 2+ may offer services
    verification_tier = models.PositiveSmallIntegerField(default=1)
    completed_bookings = models.IntegerField(default=0)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def is_marketplace_admin(self) -> bool:
        return self.is_staff or self.is_superuser or self.role == 'admin'

    @property
    def is_moderator(self) -> bool:
        return self.is_marketplace_admin or self.role == 'moderator'
