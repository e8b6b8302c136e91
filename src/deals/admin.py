"""Django admin configuration for the deals app."""
from django.contrib import admin

from deals.models import Deal, DealLedgerEntry, DealNotificationEntry, DealSize, DiscountTier


class DealSizeInline(admin.TabularInline):
    model = DealSize
    extra = 0


class DiscountTierInline(admin.TabularInline):
    model = DiscountTier
    extra = 0


@admin.register(Deal)
class DealAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "distributor",
        "status",
        "min_qty_for_discount",
        "total_sold",
        "total_revenue",
        "deal_ends_at",
    )
    list_filter = ("status", "category", "created_at")
    search_fields = ("name", "description", "distributor__email", "distributor__business_name")
    readonly_fields = ("id", "total_sold", "total_revenue", "created_at", "updated_at")
    list_select_related = ("distributor",)
    inlines = (DealSizeInline, DiscountTierInline)
    list_per_page = 50


@admin.register(DealLedgerEntry)
class DealLedgerEntryAdmin(admin.ModelAdmin):
    list_display = ("created_at", "deal", "commitment", "event", "quantity", "revenue")
    list_filter = ("event",)
    list_select_related = ("deal",)
    readonly_fields = ("deal", "commitment", "event", "quantity", "revenue", "created_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DealNotificationEntry)
class DealNotificationEntryAdmin(admin.ModelAdmin):
    list_display = ("sent_at", "deal", "user")
    list_select_related = ("deal", "user")
    readonly_fields = ("deal", "user", "sent_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
