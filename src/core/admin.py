"""Django admin configuration for the core app."""
from django.contrib import admin

from core.models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "actor", "level", "action", "entity_type", "entity_id")
    list_filter = ("level", "action", "entity_type")
    search_fields = ("entity_id", "actor__email", "actor__name", "action", "entity_type", "message")
    readonly_fields = (
        "actor",
        "level",
        "action",
        "entity_type",
        "entity_id",
        "message",
        "before_json",
        "after_json",
        "created_at",
    )
    date_hierarchy = "created_at"
    list_select_related = ("actor",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
