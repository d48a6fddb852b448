"""WSGI config for the collector service."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "collector_service.settings")

application = get_wsgi_application()
