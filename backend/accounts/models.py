from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Q


class User(AbstractUser):
    """
    User model

    Besides the login identity, a user carries the host-session accounting fed by
    the room server's HOST_ASSIGNED / HOST_LEFT webhooks.
    """
    email = models.EmailField(unique=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    # Host session tracking
    is_active_host = models.BooleanField(
        default=False,
        help_text="True while the user holds the host role in a live room"
    )
    host_session_start_time = models.DateTimeField(
        blank=True,
        null=True,
        help_text="When the current host session started; cleared when the session ends"
    )
    total_host_minutes = models.PositiveIntegerField(
        default=0,
        help_text="Accumulated whole minutes spent hosting"
    )
    USERNAME_FIELD = 'username'
    REQUIRED_FIELDS = ['email']

    class Meta:
        db_table = 'user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        constraints = [
            models.CheckConstraint(
                condition=Q(is_active_host=True, host_session_start_time__isnull=False)
                | Q(is_active_host=False, host_session_start_time__isnull=True),
                name="user_host_session_start_iff_active",
            ),
        ]

    def __str__(self):
        return self.username
