from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from .models import POICategory, PointOfInterest


class PointOfInterestSerializer(serializers.ModelSerializer):
    created_by = UserBasicSerializer(read_only=True)

    class Meta:
        model = PointOfInterest
        fields = [
            'id', 'name', 'description', 'category', 'latitude', 'longitude',
            'address', 'city', 'images', 'tags', 'created_by', 'status',
            'approval_status', 'rejection_reason', 'reviewed_at', 'created_at',
        ]
        read_only_fields = fields


class POISubmitSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    category = serializers.ChoiceField(choices=POICategory.choices, default=POICategory.OTHER)
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    address = serializers.CharField(required=False, allow_blank=True, default='')
    city = serializers.CharField(required=False, allow_blank=True, default='')
    # URLs of already-uploaded verification photos
    images = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    tags = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class POIClassifySerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()


class POIModerationSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=['approve', 'reject'])
    reason = serializers.CharField(required=False, allow_blank=True, default='')
