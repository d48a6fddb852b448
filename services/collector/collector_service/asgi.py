"""ASGI config for the collector service."""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "collector_service.settings")

application = get_asgi_application()
