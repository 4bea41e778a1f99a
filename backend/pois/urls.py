from django.urls import path
from . import views

app_name = 'pois'

urlpatterns = [
    path('', views.submit_poi_view, name='submit-poi'),
    path('classify/', views.classify_poi_view, name='classify-poi'),
    path('<int:poi_id>/moderate/', views.moderate_poi_view, name='moderate-poi'),
]
