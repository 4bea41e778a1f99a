from rest_framework import serializers

from .models import User


class UserBasicSerializer(serializers.ModelSerializer):
    """Public identity shown on bookings, incidents and provider cards"""

    class Meta:
        model = User
        fields = ["id", "username", "first_name", "last_name", "role"]
        read_only_fields = fields
