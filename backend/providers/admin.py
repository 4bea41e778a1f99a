from django.contrib import admin
from providers.models import DriverProfile, GuideProfile

PROVIDER_LIST_DISPLAY = [
    "user",
    "verification_status",
    "is_online",
    "rating",
    "total_reviews",
    "total_completed",
    "subscription_tier",
    "last_location_update",
]


@admin.register(GuideProfile)
class GuideProfileAdmin(admin.ModelAdmin):
    """Admin panel for moderating guide profiles"""

    list_display = PROVIDER_LIST_DISPLAY + ["max_group_size"]
    list_filter = ["verification_status", "is_online", "subscription_tier"]
    search_fields = ["user__username"]
    readonly_fields = ["rating", "total_reviews", "total_completed", "last_location_update"]
    ordering = ("user__username",)


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Admin panel for moderating driver profiles"""

    list_display = PROVIDER_LIST_DISPLAY + ["vehicle_number", "vehicle_type"]
    list_filter = ["verification_status", "is_online", "subscription_tier", "vehicle_type"]
    search_fields = ["user__username", "vehicle_number"]
    readonly_fields = ["rating", "total_reviews", "total_completed", "last_location_update"]
    ordering = ("user__username",)
