from django.contrib import admin
from django.utils.html import format_html
from .models import Ingredient, StockMovement, Dish, DishIngredient, DamageSpoilageLog


@admin.register(Ingredient)
class IngredientAdmin(admin.ModelAdmin):
    list_display = ('name', 'restaurant', 'base_unit', 'current_stock_display', 'packages', 'cost_per_unit',
                    'reorder_level')
    list_filter = ('restaurant', 'base_unit')
    search_fields = ('name',)
    # ledger-owned
    readonly_fields = ('current_stock', 'packages', 'cost_per_unit', 'created_at', 'updated_at')

    def current_stock_display(self, obj):
        if obj.needs_reorder:
            return format_html('<span style="color: red; font-weight: bold;">{} {}</span>',
                               obj.current_stock, obj.base_unit)
        return f"{obj.current_stock} {obj.base_unit}"
    current_stock_display.short_description = 'Current Stock'


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'ingredient', 'movement_type', 'quantity', 'stock_before', 'stock_after',
                    'cost_after', 'reference_number', 'flagged_negative', 'user')
    list_filter = ('movement_type', 'flagged_negative', 'timestamp')
    search_fields = ('ingredient__name', 'reference_number', 'notes')
    date_hierarchy = 'timestamp'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class DishIngredientInline(admin.TabularInline):
    model = DishIngredient
    extra = 1


@admin.register(Dish)
class DishAdmin(admin.ModelAdmin):
    list_display = ('name', 'restaurant', 'price', 'is_available')
    list_filter = ('restaurant', 'is_available')
    search_fields = ('name',)
    inlines = [DishIngredientInline]


@admin.register(DamageSpoilageLog)
class DamageSpoilageLogAdmin(admin.ModelAdmin):
    list_display = ('incident_date', 'ingredient', 'log_type', 'quantity', 'unit', 'estimated_cost', 'reported_by')
    list_filter = ('log_type', 'incident_date', 'restaurant')
    search_fields = ('ingredient__name', 'reason')
    readonly_fields = ('quantity_base', 'estimated_cost', 'created_at')
