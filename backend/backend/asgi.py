import os
from django.core.asgi import get_asgi_application

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backend.settings')

# Webhook endpoints are plain HTTP; no websocket routing is needed.
application = get_asgi_application()
