"""Customer API routes."""
from __future__ import annotations

from django.urls import path

from . import views

urlpatterns = [
    path("customers/", views.customer_list, name="customer-list"),
    path("customers/search/", views.customer_search, name="customer-search"),
    path("customers/stats/", views.customer_stats, name="customer-stats"),
]
