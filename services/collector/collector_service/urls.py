"""URL configuration for the collector service."""
from django.urls import include, path

urlpatterns = [
    path("api/", include("dashboard.urls")),
    path("api/", include("customers.urls")),
]
