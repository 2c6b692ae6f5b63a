from django.contrib import admin

from .models import Meeting, MeetingEvent


class MeetingEventInline(admin.TabularInline):
    model = MeetingEvent
    extra = 0
    can_delete = False
    fields = ("event_type", "timestamp", "metadata", "created_at")
    readonly_fields = fields
    ordering = ("timestamp", "id")


@admin.register(Meeting)
class MeetingAdmin(admin.ModelAdmin):
    """Meetings are written by webhook reconciliation; the admin is read-mostly."""

    list_display = ("id", "room_name", "room_jid", "status", "is_breakout", "is_lobby", "started_at", "ended_at")
    list_filter = ("status", "is_breakout", "is_lobby", "started_at")
    search_fields = ("room_name", "room_jid", "breakout_room_id", "lobby_room_id")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("-started_at",)
    inlines = [MeetingEventInline]


@admin.register(MeetingEvent)
class MeetingEventAdmin(admin.ModelAdmin):
    list_display = ("id", "meeting", "event_type", "timestamp", "created_at")
    list_filter = ("event_type", "timestamp")
    search_fields = ("meeting__room_name", "meeting__room_jid")
    list_select_related = ("meeting",)
    raw_id_fields = ("meeting",)
    readonly_fields = ("meeting", "event_type", "timestamp", "metadata", "created_at")
    ordering = ("-timestamp",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
