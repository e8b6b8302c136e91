"""Admin configuration for the notifications app."""
from django.contrib import admin
from django.utils import timezone

from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "recipient", "type", "sub_type", "priority", "is_read", "created_at")
    list_filter = ("type", "priority", "is_read", "created_at")
    search_fields = ("title", "message", "recipient__email")
    readonly_fields = ("id", "created_at", "updated_at", "read_at")
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ("mark_selected_as_read",)
    list_select_related = ("recipient", "sender")

    @admin.action(description="Mark selected as read")
    def mark_selected_as_read(self, request, queryset):
        queryset.update(is_read=True, read_at=timezone.now())
