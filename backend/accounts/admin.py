from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    User admin configuration
    """
    list_display = (
        'username', 'email', 'is_active', 'is_active_host',
        'total_host_minutes', 'created_at'
    )
    list_filter = (
        'is_active', 'is_staff', 'is_superuser', 'is_active_host', 'created_at'
    )
    search_fields = ('username', 'email', 'first_name', 'last_name')
    ordering = ('-created_at',)
    readonly_fields = (
        'created_at', 'updated_at', 'is_active_host',
        'host_session_start_time', 'total_host_minutes'
    )

    # Host accounting is written by webhook reconciliation only
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Host sessions', {
            'fields': ('is_active_host', 'host_session_start_time', 'total_host_minutes')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at')
        }),
    )
