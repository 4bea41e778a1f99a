"""Tells what to show in the Django admin interface for bookings app"""

from django.contrib import admin
from .models import Booking, SafetyIncident


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Booking admin"""
    list_display = ['booking_reference', 'booking_type', 'requester', 'guide', 'driver', 'status', 'start', 'total_amount']
    list_filter = ['booking_type', 'status', 'payment_status', 'start']
    search_fields = ['booking_reference', 'requester__username', 'pickup_address']
    readonly_fields = [
        'booking_reference', 'price_breakdown', 'commission_amount', 'final_amount', 'fare_variance',
        'created_at', 'confirmed_at', 'started_at', 'completed_at', 'cancelled_at', 'rated_at',
    ]
    date_hierarchy = 'start'


@admin.register(SafetyIncident)
class SafetyIncidentAdmin(admin.ModelAdmin):
    list_display = ("id", "incident_type", "booking", "reporter", "status", "created_at")
    list_filter = ("incident_type", "status")
    search_fields = ("booking__booking_reference", "reporter__username")
    readonly_fields = ("created_at",)

    def has_delete_permission(self, request, obj=None):
        return False
