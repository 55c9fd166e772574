from decimal import Decimal

from rest_framework import serializers
from .models import SupplierBill, SupplierPayment


class SupplierPaymentSerializer(serializers.ModelSerializer):
    bill_number = serializers.CharField(source='bill.bill_number', read_only=True)
    payment_method_display = serializers.CharField(source='get_payment_method_display', read_only=True)
    recorded_by_email = serializers.EmailField(source='recorded_by.email', read_only=True, default=None)
    cancelled_by_email = serializers.EmailField(source='cancelled_by.email', read_only=True, default=None)

    class Meta:
        model = SupplierPayment
        fields = [
            'id', 'payment_reference', 'bill', 'bill_number', 'amount', 'payment_method',
            'payment_method_display', 'payment_date', 'transaction_reference', 'notes', 'status',
            'recorded_by_email', 'cancelled_by_email', 'cancelled_at', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class SupplierBillSerializer(serializers.ModelSerializer):
    supplier_display_name = serializers.CharField(read_only=True)
    po_number = serializers.CharField(source='purchase_order.po_number', read_only=True, default=None)
    is_overdue = serializers.BooleanField(read_only=True)
    can_receive_payment = serializers.BooleanField(read_only=True)

    class Meta:
        model = SupplierBill
        fields = [
            'id', 'bill_number', 'purchase_order', 'po_number', 'supplier', 'supplier_display_name',
            'supplier_invoice_number', 'bill_date', 'due_date', 'payment_terms',
            'subtotal', 'tax_rate', 'tax_amount', 'discount_amount', 'total_amount',
            'paid_amount', 'outstanding_amount', 'status', 'is_overdue', 'can_receive_payment',
            'notes', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class SupplierBillDetailSerializer(SupplierBillSerializer):
    payments = SupplierPaymentSerializer(many=True, read_only=True)

    class Meta(SupplierBillSerializer.Meta):
        fields = SupplierBillSerializer.Meta.fields + ['payments']
        read_only_fields = fields


class GenerateBillSerializer(serializers.Serializer):
    purchase_order_id = serializers.IntegerField()
    bill_date = serializers.DateField(required=False)
    supplier_invoice_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, min_value=0)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    notes = serializers.CharField(required=False, allow_blank=True)


class BulkGenerateBillSerializer(serializers.Serializer):
    purchase_order_ids = serializers.ListField(child=serializers.IntegerField(), min_length=1)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, min_value=0)


class RecordPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    payment_method = serializers.ChoiceField(choices=SupplierPayment.PAYMENT_METHOD_CHOICES)
    payment_date = serializers.DateField(required=False)
    transaction_reference = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class UpdatePaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False)
    payment_method = serializers.ChoiceField(choices=SupplierPayment.PAYMENT_METHOD_CHOICES, required=False)
    payment_date = serializers.DateField(required=False)
    transaction_reference = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class CancelPaymentSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)
