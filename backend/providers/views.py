from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.utils import Location
from providers import services
from providers.serializers import (
    LocationUpdateSerializer,
    ProviderProfileCreateSerializer,
    ProviderSearchSerializer,
    ProviderStatusSerializer,
    serialize_provider,
)
from services.matching import SearchFilters, search_providers


class ProviderSearchView(APIView):
    """Nearby guides/drivers, optionally filtered by availability for a window."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        serializer = ProviderSearchSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        origin = Location.from_values(data["latitude"], data["longitude"])
        filters = SearchFilters(
            kind=data.get("kind"),
            start=data.get("start"),
            end=data.get("end"),
            verified_only=data["verified_only"],
            min_rating=data.get("min_rating"),
            max_base_rate=data.get("max_base_rate"),
            language=data.get("language"),
            vehicle_type=data.get("vehicle_type"),
            party_size=data.get("party_size"),
            include_unavailable=data["include_unavailable"],
        )
        matches = search_providers(origin, data["radius_km"], filters, data["sort"], data["limit"])

        results = [
            {
                "provider": serialize_provider(match.provider, {"request": request}),
                "distance_km": match.distance_km,
                "availability": match.availability.as_dict(),
            }
            for match in matches
        ]
        return Response({"count": len(results), "results": results})


class ProviderProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        profile = services.get_provider_for_user(request.user, request.query_params.get("kind"))
        return Response(serialize_provider(profile, {"request": request}))

    def post(self, request):
        serializer = ProviderProfileCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        profile = services.create_provider_profile(
            request.user,
            data.pop("kind"),
            data.pop("available_days"),
            data.pop("working_hours_start"),
            data.pop("working_hours_end"),
            **data,
        )
        return Response(serialize_provider(profile, {"request": request}), status=status.HTTP_201_CREATED)


class ProviderStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        profile = services.get_provider_for_user(request.user, request.query_params.get("kind"))
        return Response({"kind": str(profile.kind), "is_online": profile.is_online})

    def put(self, request):
        profile = services.get_provider_for_user(request.user, request.data.get("kind"))
        serializer = ProviderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        profile = services.set_provider_online(profile.ref, serializer.validated_data["is_online"])
        return Response({
            "message": "You are now online" if profile.is_online else "You are now offline",
            "kind": str(profile.kind),
            "is_online": profile.is_online,
        })


class ProviderLocationView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        profile = services.get_provider_for_user(request.user, request.query_params.get("kind"))
        return Response({
            "latitude": float(profile.current_latitude) if profile.current_latitude is not None else None,
            "longitude": float(profile.current_longitude) if profile.current_longitude is not None else None,
            "last_updated": profile.last_location_update,
            "is_online": profile.is_online,
        })

    def post(self, request):
        profile = services.get_provider_for_user(request.user, request.data.get("kind"))
        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]
        profile = services.update_provider_location(profile.ref, lat, lon)

        return Response({
            "message": "Location updated",
            "latitude": float(profile.current_latitude),
            "longitude": float(profile.current_longitude),
            "is_online": profile.is_online,
        })
