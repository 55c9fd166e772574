from django.contrib import admin
from .models import PurchaseOrder, PurchaseOrderItem


class PurchaseOrderItemInline(admin.TabularInline):
    model = PurchaseOrderItem
    extra = 0
    readonly_fields = ['received_quantity', 'total_price']


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = ['po_number', 'restaurant', 'display_supplier_name', 'status', 'order_date',
                    'expected_delivery_date', 'total_amount', 'is_manual_receive']
    list_filter = ['status', 'is_manual_receive', 'order_date', 'restaurant']
    search_fields = ['po_number', 'supplier__name', 'supplier_name', 'notes']
    # status moves through the lifecycle services only
    readonly_fields = ['po_number', 'status', 'subtotal', 'tax_amount', 'total_amount',
                       'approved_by', 'approved_at', 'supplier_response', 'supplier_responded_at',
                       'created_at', 'updated_at']
    inlines = [PurchaseOrderItemInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('po_number', 'restaurant', 'supplier', 'supplier_name', 'supplier_contact',
                       'is_manual_receive', 'status')
        }),
        ('Dates', {
            'fields': ('order_date', 'expected_delivery_date', 'actual_delivery_date')
        }),
        ('Financial', {
            'fields': ('subtotal', 'discount_amount', 'tax_rate', 'tax_amount', 'total_amount')
        }),
        ('Approval', {
            'fields': ('created_by', 'approved_by', 'approved_at', 'supplier_response', 'supplier_responded_at')
        }),
        ('Receiving', {
            'fields': ('received_by', 'delivery_condition', 'receiving_notes')
        }),
        ('Additional Information', {
            'fields': ('notes', 'delivery_instructions')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(PurchaseOrderItem)
class PurchaseOrderItemAdmin(admin.ModelAdmin):
    list_display = ['purchase_order', 'ingredient', 'ordered_quantity', 'received_quantity', 'unit_price',
                    'total_price', 'has_discrepancy']
    list_filter = ['purchase_order__status', 'has_discrepancy', 'quality_rating']
    search_fields = ['purchase_order__po_number', 'ingredient__name']
    readonly_fields = ['received_quantity', 'total_price', 'quantity_pending', 'is_fully_received',
                       'created_at', 'updated_at']
