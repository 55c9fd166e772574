from django.contrib import admin
from .models import Supplier, SupplierOffering


class SupplierOfferingInline(admin.TabularInline):
    model = SupplierOffering
    fields = ['ingredient', 'package_unit', 'package_contents_quantity', 'package_contents_unit',
              'package_price', 'minimum_order_quantity', 'lead_time_days', 'is_active']
    extra = 0


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['name', 'restaurant', 'contact_person', 'phone', 'email', 'payment_terms', 'is_active', 'lead_time_days']
    list_filter = ['is_active', 'payment_terms', 'restaurant']
    search_fields = ['name', 'contact_person', 'email', 'phone']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [SupplierOfferingInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('restaurant', 'name', 'contact_person', 'email', 'phone', 'address')
        }),
        ('Business Details', {
            'fields': ('payment_terms', 'credit_limit', 'lead_time_days', 'notes')
        }),
        ('Status', {
            'fields': ('is_active',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(SupplierOffering)
class SupplierOfferingAdmin(admin.ModelAdmin):
    list_display = ['supplier', 'ingredient', 'package_unit', 'package_contents_quantity', 'package_price', 'is_active']
    list_filter = ['is_active', 'supplier']
    search_fields = ['supplier__name', 'ingredient__name']
    readonly_fields = ['created_at', 'updated_at']
