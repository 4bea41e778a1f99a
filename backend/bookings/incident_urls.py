from django.urls import path
from . import views

app_name = 'incidents'

urlpatterns = [
    path('<int:incident_id>/resolve/', views.resolve_incident_view, name='resolve-incident'),
]
