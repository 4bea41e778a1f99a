from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.utils import Location
from services.moderation import classify_poi, find_similar_pois, moderate_poi, submit_poi
from .serializers import (
    POIClassifySerializer,
    POIModerationSerializer,
    POISubmitSerializer,
    PointOfInterestSerializer,
)


def _similar_payload(similar):
    return [
        {'id': poi.id, 'name': poi.name, 'distance_km': round(distance, 3)}
        for poi, distance in similar
    ]


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def submit_poi_view(request):
    """Contribute a point of interest (at least one photo required)"""
    serializer = POISubmitSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = submit_poi(
        request.user,
        data['name'],
        Location.from_values(data['latitude'], data['longitude']),
        data['category'],
        data['images'],
        description=data['description'],
        address=data['address'],
        city=data['city'],
        tags=data['tags'],
    )
    return Response(
        {
            'message': result.message,
            'approval_status': result.poi.approval_status,
            'poi': PointOfInterestSerializer(result.poi).data,
            'similar_to': _similar_payload(result.similar),
        },
        status=status.HTTP_201_CREATED
    )


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def classify_poi_view(request):
    """Dry run: what approval status would this name/location get?"""
    serializer = POIClassifySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    location = Location.from_values(data['latitude'], data['longitude'])
    return Response({
        'approval_status': classify_poi(data['name'], location),
        'similar_to': _similar_payload(find_similar_pois(data['name'], location)),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def moderate_poi_view(request, poi_id):
    serializer = POIModerationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = moderate_poi(
        poi_id,
        request.user,
        serializer.validated_data['decision'],
        serializer.validated_data['reason'],
    )
    return Response({'message': result.message, 'poi': PointOfInterestSerializer(result.poi).data})
