from django.contrib import admin
from .models import PointOfInterest


@admin.register(PointOfInterest)
class PointOfInterestAdmin(admin.ModelAdmin):
    """Moderation queue for submitted points of interest"""
    list_display = ['name', 'category', 'city', 'approval_status', 'status', 'created_by', 'created_at']
    list_filter = ['approval_status', 'status', 'category']
    search_fields = ['name', 'city', 'address']
    readonly_fields = ['created_at', 'updated_at', 'reviewed_at']
