from django.urls import path
from . import views

app_name = 'bookings'

urlpatterns = [
    path('', views.create_booking_view, name='create-booking'),
    path('fare-estimate/', views.fare_estimate, name='fare-estimate'),
    path('<int:booking_id>/', views.booking_detail, name='booking-detail'),
    path('<int:booking_id>/rate/', views.rate_booking_view, name='rate-booking'),
    path('<int:booking_id>/<str:action>/', views.booking_action, name='booking-action'),
]
