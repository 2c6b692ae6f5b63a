"""URL routes for billing webhooks."""
from django.urls import path

from .views_webhook import PaddleWebhookView

app_name = "billing"

urlpatterns = [
    path("paddle/", PaddleWebhookView.as_view(), name="paddle-webhook"),
]
