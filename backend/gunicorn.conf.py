import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")
import django  # noqa: E402

django.setup()

from django.conf import settings  # noqa: E402

wsgi_app = "core.wsgi:application"
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "3"))
# Longer than the database statement timeout so storage errors surface as 503
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))

errorlog = "-"
accesslog = "-"
loglevel = settings.LOG_LEVEL.lower()
capture_output = True

# Requests and application records share the JSON formatter and request_id filter
logconfig_dict = settings.LOGGING
