"""Django admin configuration for the commitments app.

Commitments are read-only here; every change goes through
:mod:`commitments.services` so pricing and the deal ledger stay in sync.
"""
from django.contrib import admin

from commitments.models import Commitment, CommitmentStatusChange, SizeCommitment


class SizeCommitmentInline(admin.TabularInline):
    model = SizeCommitment
    extra = 0
    can_delete = False
    readonly_fields = ("kind", "size", "quantity", "price_per_unit", "total_price")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Commitment)
class CommitmentAdmin(admin.ModelAdmin):
    list_display = (
        "created_at",
        "user",
        "deal",
        "status",
        "total_price",
        "modified_by_distributor",
        "modified_total_price",
        "payment_status",
    )
    list_filter = ("status", "payment_status", "modified_by_distributor")
    search_fields = ("user__email", "user__business_name", "deal__name")
    list_select_related = ("user", "deal")
    inlines = (SizeCommitmentInline,)
    date_hierarchy = "created_at"
    readonly_fields = (
        "id",
        "user",
        "deal",
        "status",
        "total_price",
        "applied_discount_tier",
        "applied_discount_percent",
        "distributor_response",
        "modified_by_distributor",
        "modified_total_price",
        "decided_at",
        "payment_status",
        "version",
        "created_at",
        "updated_at",
    )

    def has_add_permission(self, request):
        return False


@admin.register(CommitmentStatusChange)
class CommitmentStatusChangeAdmin(admin.ModelAdmin):
    list_display = (
        "created_at",
        "commitment",
        "previous_status",
        "new_status",
        "processed_by",
        "processed_for_email",
    )
    list_filter = ("new_status", "processed_by", "processed_for_email")
    readonly_fields = [field.name for field in CommitmentStatusChange._meta.fields]

    def has_add_permission(self, request):
        return False
