from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from providers.serializers import ProviderBasicSerializer
from services.pricing import WeatherCondition
from .models import Booking, SafetyIncident


class BookingSerializer(serializers.ModelSerializer):
    """Serializer for Bookings"""
    requester = UserBasicSerializer(read_only=True)
    guide = ProviderBasicSerializer(read_only=True, allow_null=True)
    driver = ProviderBasicSerializer(read_only=True, allow_null=True)

    class Meta:
        model = Booking
        fields = [
            'id', 'booking_reference', 'booking_type', 'requester', 'guide', 'driver',
            'start', 'end', 'duration_minutes', 'party_size',
            'pickup_latitude', 'pickup_longitude', 'pickup_address',
            'dropoff_latitude', 'dropoff_longitude', 'dropoff_address', 'special_requests',
            'estimated_distance_km', 'surge_multiplier', 'price_breakdown',
            'total_amount', 'platform_fee', 'commission_amount', 'final_amount', 'fare_variance',
            'status', 'payment_status',
            'cancelled_by', 'cancellation_reason', 'refund_amount', 'cancelled_at',
            'rating', 'review', 'rated_at',
            'created_at', 'confirmed_at', 'started_at', 'completed_at',
        ]
        read_only_fields = fields


class LocationFieldsMixin(serializers.Serializer):
    pickup_latitude = serializers.FloatField()
    pickup_longitude = serializers.FloatField()
    pickup_address = serializers.CharField(required=False, allow_blank=True, default='')
    dropoff_latitude = serializers.FloatField(required=False, allow_null=True)
    dropoff_longitude = serializers.FloatField(required=False, allow_null=True)
    dropoff_address = serializers.CharField(required=False, allow_blank=True, default='')
    distance_km = serializers.FloatField(required=False, min_value=0)
    party_size = serializers.IntegerField(min_value=1, default=1)

    def validate(self, attrs):
        if (attrs.get('dropoff_latitude') is None) != (attrs.get('dropoff_longitude') is None):
            raise serializers.ValidationError("Dropoff needs both latitude and longitude")
        return attrs


class BookingCreateSerializer(LocationFieldsMixin):
    """Serializer for creating guide / driver / combined bookings"""
    guide_id = serializers.IntegerField(required=False)
    driver_id = serializers.IntegerField(required=False)
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    special_requests = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if attrs.get('guide_id') is None and attrs.get('driver_id') is None:
            raise serializers.ValidationError("Choose a guide, a driver or both")
        return attrs


class BookingActionSerializer(serializers.Serializer):
    """Optional payload for confirm/start/complete/cancel"""
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    actual_distance_km = serializers.FloatField(required=False, min_value=0)
    actual_duration_minutes = serializers.FloatField(required=False, min_value=0)


class BookingRatingSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    review = serializers.CharField(required=False, allow_blank=True, default='')


class FareEstimateSerializer(serializers.Serializer):
    base_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    per_distance_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    per_time_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    distance_km = serializers.DecimalField(max_digits=8, decimal_places=3, min_value=0)
    duration_minutes = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0)
    at = serializers.DateTimeField(required=False)
    weather = serializers.ChoiceField(
        choices=[WeatherCondition.CLEAR, WeatherCondition.RAIN, WeatherCondition.STORM],
        required=False,
    )
    demand_ratio = serializers.FloatField(required=False, min_value=0)
    commission_rate = serializers.DecimalField(max_digits=4, decimal_places=3, required=False, min_value=0, max_value=1)
    include_platform_fee = serializers.BooleanField(default=False)


# ==================== Rides ====================

class RideRequestSerializer(LocationFieldsMixin):
    """Serializer for on-demand ride requests"""
    driver_id = serializers.IntegerField()
    estimated_duration_minutes = serializers.IntegerField(required=False, min_value=1)


class RideResponseSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=['accept', 'decline'])
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class RideCompleteSerializer(serializers.Serializer):
    actual_distance_km = serializers.FloatField(required=False, min_value=0)
    actual_duration_minutes = serializers.FloatField(required=False, min_value=0)


# ==================== Safety ====================

class ShareTripSerializer(serializers.Serializer):
    contacts = serializers.ListField(child=serializers.CharField(max_length=254), allow_empty=False, max_length=10)


class SOSSerializer(serializers.Serializer):
    latitude = serializers.FloatField(required=False, allow_null=True)
    longitude = serializers.FloatField(required=False, allow_null=True)
    message = serializers.CharField(required=False, allow_blank=True, default='')


class IncidentReportSerializer(serializers.Serializer):
    description = serializers.CharField()
    evidence = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    latitude = serializers.FloatField(required=False, allow_null=True)
    longitude = serializers.FloatField(required=False, allow_null=True)


class SafetyIncidentSerializer(serializers.ModelSerializer):
    reporter = UserBasicSerializer(read_only=True)
    booking_reference = serializers.CharField(source='booking.booking_reference', read_only=True)

    class Meta:
        model = SafetyIncident
        fields = [
            'id', 'booking', 'booking_reference', 'reporter', 'incident_type',
            'latitude', 'longitude', 'description', 'evidence', 'status',
            'resolved_by', 'resolved_at', 'created_at',
        ]
        read_only_fields = fields
