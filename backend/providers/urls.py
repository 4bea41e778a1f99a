from django.urls import path
from .views import (
    ProviderSearchView,
    ProviderProfileView,
    ProviderStatusView,
    ProviderLocationView,
)

urlpatterns = [
    path("search/", ProviderSearchView.as_view(), name="provider-search"),
    path("me/", ProviderProfileView.as_view(), name="provider-profile"),
    path("me/status/", ProviderStatusView.as_view(), name="provider-status"),
    path("me/location/", ProviderLocationView.as_view(), name="provider-location"),
]
