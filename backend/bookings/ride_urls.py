from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Passenger APIs
    path('request/', views.request_ride_view, name='request-ride'),
    path('<int:booking_id>/share/', views.share_trip_view, name='share-trip'),
    path('<int:booking_id>/sos/', views.trigger_sos_view, name='sos'),
    path('<int:booking_id>/incidents/', views.report_incident_view, name='report-incident'),

    # Driver Ride Actions
    path('<int:booking_id>/respond/', views.respond_to_ride_view, name='respond-ride'),
    path('<int:booking_id>/start/', views.start_ride_view, name='start-ride'),
    path('<int:booking_id>/complete/', views.complete_ride_view, name='complete-ride'),
]
