"""
WSGI config for the payout engine.

The engine is served through ASGI (config.asgi) by default; this WSGI
entry point exists for gunicorn-style deployments and the admin.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
