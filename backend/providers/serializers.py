from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from providers.models import WEEKDAYS, DriverProfile, GuideProfile, ProviderKind

PROVIDER_FIELDS = [
    "id",
    "user",
    "kind",
    "available_days",
    "working_hours_start",
    "working_hours_end",
    "is_online",
    "current_latitude",
    "current_longitude",
    "last_location_update",
    "base_rate",
    "per_km_rate",
    "per_minute_rate",
    "verification_status",
    "rating",
    "total_reviews",
    "total_completed",
    "subscription_tier",
]


class GuideProfileSerializer(serializers.ModelSerializer):
    user = UserBasicSerializer(read_only=True)
    kind = serializers.CharField(read_only=True)

    class Meta:
        model = GuideProfile
        fields = PROVIDER_FIELDS + ["languages", "specializations", "max_group_size"]
        read_only_fields = fields


class DriverProfileSerializer(serializers.ModelSerializer):
    user = UserBasicSerializer(read_only=True)
    kind = serializers.CharField(read_only=True)

    class Meta:
        model = DriverProfile
        fields = PROVIDER_FIELDS + ["vehicle_type", "vehicle_number", "max_passengers"]
        read_only_fields = fields


def serialize_provider(profile, context=None):
    serializer = GuideProfileSerializer if profile.kind == ProviderKind.GUIDE else DriverProfileSerializer
    return serializer(profile, context=context or {}).data


class ProviderBasicSerializer(serializers.Serializer):
    """
    Lite provider info embedded in bookings.
    """
    id = serializers.IntegerField()
    kind = serializers.CharField()
    username = serializers.CharField(source="user.username")
    phone_number = serializers.CharField(source="user.phone_number")
    rating = serializers.DecimalField(max_digits=3, decimal_places=1)
    is_verified = serializers.BooleanField()


class ProviderProfileCreateSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=ProviderKind.choices)
    available_days = serializers.ListField(
        child=serializers.ChoiceField(choices=WEEKDAYS), allow_empty=False
    )
    working_hours_start = serializers.TimeField()
    working_hours_end = serializers.TimeField()
    base_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    per_km_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, default=0)
    per_minute_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, default=0)
    # guide
    languages = serializers.ListField(child=serializers.CharField(), required=False)
    specializations = serializers.ListField(child=serializers.CharField(), required=False)
    max_group_size = serializers.IntegerField(min_value=1, required=False)
    # driver
    vehicle_type = serializers.CharField(required=False)
    vehicle_number = serializers.CharField(required=False)
    max_passengers = serializers.IntegerField(min_value=1, required=False)

    GUIDE_ONLY = ("languages", "specializations", "max_group_size")
    DRIVER_ONLY = ("vehicle_type", "vehicle_number", "max_passengers")

    def validate(self, attrs):
        if attrs["kind"] == ProviderKind.DRIVER and not attrs.get("vehicle_number"):
            raise serializers.ValidationError({"vehicle_number": "Drivers must register a vehicle number"})
        excluded = self.DRIVER_ONLY if attrs["kind"] == ProviderKind.GUIDE else self.GUIDE_ONLY
        for name in excluded:
            attrs.pop(name, None)
        return attrs


class ProviderStatusSerializer(serializers.Serializer):
    """
    Serializer for switching a provider online/offline.
    """
    is_online = serializers.BooleanField()


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating a provider's GPS location.
    """
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6)


class ProviderSearchSerializer(serializers.Serializer):
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    radius_km = serializers.FloatField(default=10)
    kind = serializers.ChoiceField(choices=ProviderKind.choices, required=False)
    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)
    verified_only = serializers.BooleanField(default=False)
    min_rating = serializers.DecimalField(max_digits=3, decimal_places=1, required=False)
    max_base_rate = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    language = serializers.CharField(required=False)
    vehicle_type = serializers.CharField(required=False)
    party_size = serializers.IntegerField(min_value=1, required=False)
    include_unavailable = serializers.BooleanField(default=False)
    sort = serializers.ChoiceField(choices=["distance", "rating", "price"], default="distance")
    limit = serializers.IntegerField(min_value=1, max_value=100, default=50)

    def validate(self, attrs):
        if ("start" in attrs) != ("end" in attrs):
            raise serializers.ValidationError("Provide both start and end, or neither")
        return attrs
