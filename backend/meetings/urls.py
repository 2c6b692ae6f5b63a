"""URL routes for room server webhooks."""
from django.urls import path

from .views_webhook import RoomServerWebhookView

app_name = "meetings"

urlpatterns = [
    path("room-server/", RoomServerWebhookView.as_view(), name="room-server-webhook"),
]
