from django.contrib import admin
from .models import SupplierBill, SupplierPayment


class SupplierPaymentInline(admin.TabularInline):
    model = SupplierPayment
    extra = 0
    can_delete = False
    readonly_fields = ['payment_reference', 'amount', 'payment_method', 'payment_date', 'status',
                       'recorded_by', 'cancelled_by', 'cancelled_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(SupplierBill)
class SupplierBillAdmin(admin.ModelAdmin):
    list_display = ['bill_number', 'supplier_display_name', 'status', 'bill_date', 'due_date',
                    'total_amount', 'paid_amount', 'outstanding_amount', 'is_overdue']
    list_filter = ['status', 'bill_date', 'due_date', 'payment_terms', 'restaurant']
    search_fields = ['bill_number', 'supplier__name', 'supplier_invoice_number', 'purchase_order__po_number']
    # amounts are kept balanced by the payment ledger
    readonly_fields = ['bill_number', 'purchase_order', 'subtotal', 'tax_rate', 'tax_amount', 'discount_amount',
                       'total_amount', 'paid_amount', 'outstanding_amount', 'status', 'is_overdue',
                       'created_at', 'updated_at']
    inlines = [SupplierPaymentInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('bill_number', 'purchase_order', 'restaurant', 'supplier', 'supplier_invoice_number', 'status')
        }),
        ('Dates', {
            'fields': ('bill_date', 'due_date', 'payment_terms')
        }),
        ('Financial Details', {
            'fields': ('subtotal', 'tax_rate', 'tax_amount', 'discount_amount', 'total_amount',
                       'paid_amount', 'outstanding_amount')
        }),
        ('Additional Information', {
            'fields': ('notes', 'created_by')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(SupplierPayment)
class SupplierPaymentAdmin(admin.ModelAdmin):
    list_display = ['payment_reference', 'bill', 'amount', 'payment_method', 'payment_date', 'status']
    list_filter = ['status', 'payment_method', 'payment_date']
    search_fields = ['payment_reference', 'bill__bill_number', 'transaction_reference']
    readonly_fields = ['payment_reference', 'bill', 'amount', 'status', 'recorded_by', 'cancelled_by',
                       'cancelled_at', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
