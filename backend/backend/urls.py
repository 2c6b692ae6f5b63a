"""
URL configuration for backend project.

Routes include administration, the inbound webhook endpoints, health checks, and metrics.
"""
import os
from prometheus_client import CollectorRegistry, multiprocess, generate_latest, REGISTRY
from django.contrib import admin
from django.urls import path, include
from django.http import HttpResponse

# Initialize Prometheus registry
# Use multiprocess collector only if PROMETHEUS_MULTIPROC_DIR is set (production)
# Otherwise use default registry (development)
if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY


def health_check(request):
    return HttpResponse("OK", content_type="text/plain")


def webhook_metrics(request):
    payload = generate_latest(registry)
    return HttpResponse(payload, content_type="text/plain; version=0.0.4")


urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/webhooks/', include('billing.urls', namespace='billing')),
    path('api/webhooks/', include('meetings.urls', namespace='meetings')),
    path('health/', health_check, name='health_check'),
    path('metrics/webhooks/', webhook_metrics, name='webhook_metrics'),
]
