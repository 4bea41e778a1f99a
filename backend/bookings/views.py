from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.utils import Location
from services.booking_management import (
    create_booking,
    get_booking_for_party,
    rate_booking,
    transition_booking,
)
from services.dispatch import (
    complete_ride,
    report_incident,
    request_ride,
    resolve_incident,
    respond_to_ride,
    share_trip,
    start_ride,
    trigger_sos,
)
from services.exceptions import InvalidCoordinate
from services.matching import ProviderRef
from services.pricing import SurgeInputs, estimate
from .serializers import (
    BookingActionSerializer,
    BookingCreateSerializer,
    BookingRatingSerializer,
    BookingSerializer,
    FareEstimateSerializer,
    IncidentReportSerializer,
    RideCompleteSerializer,
    RideRequestSerializer,
    RideResponseSerializer,
    SafetyIncidentSerializer,
    SOSSerializer,
    ShareTripSerializer,
)
from .tasks import schedule_ride_expiry

BOOKING_ACTIONS = ('confirm', 'start', 'complete', 'cancel')


def _optional_location(latitude, longitude):
    if latitude is None or longitude is None:
        return None
    return Location.from_values(latitude, longitude)


def _booking_response(result, status_code=status.HTTP_200_OK):
    payload = {
        'message': result.message,
        'booking': BookingSerializer(result.booking).data,
    }
    if result.extra:
        payload.update(result.extra)
    return Response(payload, status=status_code)


# ==================== Booking APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_booking_view(request):
    """Book a guide, a driver or both for a time window"""
    serializer = BookingCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    refs = []
    if data.get('guide_id') is not None:
        refs.append(ProviderRef.guide(data['guide_id']))
    if data.get('driver_id') is not None:
        refs.append(ProviderRef.driver(data['driver_id']))

    result = create_booking(
        request.user,
        refs,
        data['start'],
        data['end'],
        Location.from_values(data['pickup_latitude'], data['pickup_longitude']),
        _optional_location(data.get('dropoff_latitude'), data.get('dropoff_longitude')),
        party_size=data['party_size'],
        distance=data.get('distance_km'),
        pickup_address=data['pickup_address'],
        dropoff_address=data['dropoff_address'],
        special_requests=data['special_requests'],
    )
    return _booking_response(result, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def booking_detail(request, booking_id):
    booking = get_booking_for_party(booking_id, request.user)
    return Response(BookingSerializer(booking).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def booking_action(request, booking_id, action):
    """confirm / start / complete / cancel"""
    if action not in BOOKING_ACTIONS:
        return Response(
            {'error': 'unknown_action', 'message': f"Unknown booking action: {action}"},
            status=status.HTTP_404_NOT_FOUND
        )

    serializer = BookingActionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = transition_booking(booking_id, request.user, action, serializer.validated_data)
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def rate_booking_view(request, booking_id):
    serializer = BookingRatingSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = rate_booking(
        booking_id,
        request.user,
        serializer.validated_data['rating'],
        serializer.validated_data['review'],
    )
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def fare_estimate(request):
    """Price breakdown for arbitrary rates, distance, duration and surge inputs"""
    serializer = FareEstimateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    breakdown = estimate(
        data['base_rate'],
        data['per_distance_rate'],
        data['per_time_rate'],
        data['distance_km'],
        data['duration_minutes'],
        surge_inputs=SurgeInputs(
            at=data.get('at') or timezone.now(),
            weather=data.get('weather'),
            demand_ratio=data.get('demand_ratio'),
        ),
        commission_rate=data.get('commission_rate'),
        include_platform_fee=data['include_platform_fee'],
    )
    return Response(breakdown.as_dict())


# ==================== Ride APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def request_ride_view(request):
    """Request an on-demand ride from a driver"""
    serializer = RideRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = request_ride(
        request.user,
        data['driver_id'],
        Location.from_values(data['pickup_latitude'], data['pickup_longitude']),
        _optional_location(data.get('dropoff_latitude'), data.get('dropoff_longitude')),
        estimated_duration_minutes=data.get('estimated_duration_minutes'),
        party_size=data['party_size'],
        pickup_address=data['pickup_address'],
        dropoff_address=data['dropoff_address'],
        distance=data.get('distance_km'),
    )
    # Driver must answer within the response window or the ride is cancelled
    schedule_ride_expiry(result.booking.id)
    return _booking_response(result, status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def respond_to_ride_view(request, booking_id):
    serializer = RideResponseSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = respond_to_ride(
        booking_id,
        request.user,
        serializer.validated_data['action'],
        serializer.validated_data['reason'],
    )
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def start_ride_view(request, booking_id):
    return _booking_response(start_ride(booking_id, request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def complete_ride_view(request, booking_id):
    serializer = RideCompleteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = complete_ride(
        booking_id,
        request.user,
        actual_distance_km=serializer.validated_data.get('actual_distance_km'),
        actual_duration_minutes=serializer.validated_data.get('actual_duration_minutes'),
    )
    return _booking_response(result)


# ==================== Safety APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def share_trip_view(request, booking_id):
    serializer = ShareTripSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    shared = share_trip(booking_id, request.user, serializer.validated_data['contacts'])
    return Response({'message': 'Trip shared', **shared})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def trigger_sos_view(request, booking_id):
    """Emergency alert. Only refused when the caller is not the traveler."""
    serializer = SOSSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        location = _optional_location(data.get('latitude'), data.get('longitude'))
    except InvalidCoordinate:
        # A garbled GPS fix must not stop an SOS
        location = None

    incident = trigger_sos(booking_id, request.user, location, data['message'])
    return Response(
        {
            'message': 'SOS alert sent. Help is on the way.',
            'incident': SafetyIncidentSerializer(incident).data,
        },
        status=status.HTTP_201_CREATED
    )


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def report_incident_view(request, booking_id):
    serializer = IncidentReportSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    incident = report_incident(
        booking_id,
        request.user,
        data['description'],
        evidence=data['evidence'],
        location=_optional_location(data.get('latitude'), data.get('longitude')),
    )
    return Response(
        {
            'message': 'Incident reported. Our safety team will review it.',
            'incident': SafetyIncidentSerializer(incident).data,
        },
        status=status.HTTP_201_CREATED
    )


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def resolve_incident_view(request, incident_id):
    incident = resolve_incident(incident_id, request.user)
    return Response({
        'message': 'Incident resolved',
        'incident': SafetyIncidentSerializer(incident).data,
    })
