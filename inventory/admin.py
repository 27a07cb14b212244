from django.contrib import admin

from .models import StockLevel, StockMovement


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ("id", "shop", "product", "variant", "kind", "quantity", "final_quantity", "origin", "created_at")
    list_filter = ("kind", "origin", "shop")
    search_fields = ("product__name", "reason")

    # Ledger rows are append-only and only written through StockLedger.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StockLevel)
class StockLevelAdmin(admin.ModelAdmin):
    list_display = ("shop", "product", "variant", "raw_total", "movement_count", "last_movement_at")
    list_filter = ("shop",)
    readonly_fields = ("raw_total", "movement_count", "last_movement_at")
