from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import User


@admin.register(User)
class MarketplaceUserAdmin(UserAdmin):
    """Adds marketplace fields to the stock user admin"""
    list_display = ['username', 'email', 'role', 'verification_tier', 'completed_bookings', 'is_staff']
    list_filter = ['role', 'verification_tier', 'is_staff']
    fieldsets = UserAdmin.fieldsets + (
        ('Marketplace', {'fields': ('role', 'phone_number', 'verification_tier', 'completed_bookings')}),
    )
