from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Provider APIs (search, own profile, status, location)
    path('api/providers/', include('providers.urls')),

    # Booking endpoints (create, detail, transitions, rating, fare estimate)
    path('api/bookings/', include('bookings.urls')),

    # On-demand rides and trip safety (at /api/rides/)
    path('api/rides/', include('bookings.ride_urls')),
    path('api/incidents/', include('bookings.incident_urls')),

    # Points of interest (submit, classify, moderate)
    path('api/pois/', include('pois.urls')),
]
