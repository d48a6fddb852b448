"""Dashboard API routes."""
from __future__ import annotations

from django.urls import path

from . import views

urlpatterns = [
    path("healthz/", views.health, name="collector-health"),
    path("dashboard/", views.dashboard, name="collector-dashboard"),
    path("pickups/", views.pickups, name="collector-pickups"),
]
