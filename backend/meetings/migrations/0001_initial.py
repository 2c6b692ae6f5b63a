from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Meeting",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("room_name", models.CharField(max_length=255)),
                (
                    "room_jid",
                    models.CharField(
                        help_text="Room JID; falls back to the room name when the server did not send one",
                        max_length=255,
                    ),
                ),
                ("is_breakout", models.BooleanField(default=False)),
                ("breakout_room_id", models.CharField(blank=True, max_length=255, null=True)),
                ("is_lobby", models.BooleanField(default=False)),
                ("lobby_room_id", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("ongoing", "Ongoing"), ("ended", "Ended")],
                        default="ongoing",
                        max_length=20,
                    ),
                ),
                ("started_at", models.DateTimeField()),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Meeting",
                "verbose_name_plural": "Meetings",
                "db_table": "meetings",
                "ordering": ["-started_at"],
                "indexes": [
                    models.Index(fields=["room_name", "is_breakout"], name="meeting_room_name_idx"),
                    models.Index(fields=["started_at"], name="meeting_started_at_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "ongoing")),
                        fields=("room_jid", "is_breakout"),
                        name="unique_ongoing_meeting_per_room",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MeetingEvent",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("room_created", "Room created"),
                            ("room_destroyed", "Room destroyed"),
                            ("occupant_joined", "Occupant joined"),
                            ("occupant_left", "Occupant left"),
                            ("role_changed", "Role changed"),
                            ("affiliation_changed", "Affiliation changed"),
                            ("host_assigned", "Host assigned"),
                            ("host_left", "Host left"),
                        ],
                        max_length=50,
                    ),
                ),
                (
                    "timestamp",
                    models.DateTimeField(
                        help_text="Occurrence time from the payload, or ingestion time when the payload has none",
                    ),
                ),
                ("metadata", models.JSONField(default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "meeting",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="events",
                        to="meetings.meeting",
                    ),
                ),
            ],
            options={
                "verbose_name": "Meeting event",
                "verbose_name_plural": "Meeting events",
                "db_table": "meeting_events",
                "ordering": ["timestamp", "id"],
                "indexes": [
                    models.Index(fields=["meeting", "timestamp"], name="meeting_event_timeline_idx"),
                    models.Index(fields=["event_type"], name="meeting_event_type_idx"),
                ],
            },
        ),
    ]
