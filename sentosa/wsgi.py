"""
WSGI config for the sentosa project.

It exposes the WSGI callable as a module-level variable named ``application``.
WebSocket push is only available through ``sentosa.asgi``; a WSGI deployment
falls back to the polling interval advertised by the queue board.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'sentosa.settings')

application = get_wsgi_application()
