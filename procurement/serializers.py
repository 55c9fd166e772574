from decimal import Decimal

from rest_framework import serializers
from .models import PurchaseOrder, PurchaseOrderItem


class PurchaseOrderItemSerializer(serializers.ModelSerializer):
    ingredient_name = serializers.CharField(source='ingredient.name', read_only=True)
    base_unit = serializers.CharField(source='ingredient.base_unit', read_only=True)
    quantity_pending = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = PurchaseOrderItem
        fields = [
            'id', 'ingredient', 'ingredient_name', 'base_unit',
            'ordered_quantity', 'received_quantity', 'quantity_pending',
            'unit_of_measure', 'unit_price', 'total_price',
            'quality_rating', 'condition_notes', 'has_discrepancy', 'discrepancy_reason', 'notes',
        ]
        read_only_fields = fields


class PurchaseOrderSerializer(serializers.ModelSerializer):
    items = PurchaseOrderItemSerializer(many=True, read_only=True)
    supplier_display_name = serializers.CharField(source='display_supplier_name', read_only=True)
    created_by_email = serializers.EmailField(source='created_by.email', read_only=True, default=None)
    approved_by_email = serializers.EmailField(source='approved_by.email', read_only=True, default=None)
    bill = serializers.SerializerMethodField()

    class Meta:
        model = PurchaseOrder
        fields = [
            'id', 'po_number', 'supplier', 'supplier_display_name', 'supplier_contact', 'is_manual_receive',
            'status', 'order_date', 'expected_delivery_date', 'actual_delivery_date',
            'subtotal', 'tax_rate', 'tax_amount', 'discount_amount', 'total_amount',
            'notes', 'delivery_instructions',
            'created_by_email', 'approved_by_email', 'approved_at',
            'supplier_response', 'supplier_responded_at',
            'received_by', 'delivery_condition', 'receiving_notes',
            'items', 'bill', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_bill(self, obj):
        bill = getattr(obj, 'bill', None)
        if bill is None:
            return None
        return {'id': bill.pk, 'bill_number': bill.bill_number, 'status': bill.status}


class PurchaseOrderItemInputSerializer(serializers.Serializer):
    ingredient_id = serializers.IntegerField()
    ordered_quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    unit_of_measure = serializers.CharField(max_length=50, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class PurchaseOrderWriteSerializer(serializers.Serializer):
    """Payload for creating or editing an order; everything is optional on PATCH"""
    supplier_id = serializers.IntegerField(required=False, allow_null=True)
    items = PurchaseOrderItemInputSerializer(many=True, required=False)
    expected_delivery_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    delivery_instructions = serializers.CharField(required=False, allow_blank=True)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, min_value=0)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError('At least one item is required')
        return value


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500)


class ItemReceiptSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    received_quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    quality_rating = serializers.ChoiceField(choices=PurchaseOrder.CONDITION_CHOICES, required=False, allow_blank=True)
    condition_notes = serializers.CharField(max_length=500, required=False, allow_blank=True)
    has_discrepancy = serializers.BooleanField(required=False)
    discrepancy_reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class DeliveryMetaSerializer(serializers.Serializer):
    actual_delivery_date = serializers.DateField(required=False)
    delivery_condition = serializers.ChoiceField(choices=PurchaseOrder.CONDITION_CHOICES, required=False)
    received_by = serializers.CharField(max_length=100, required=False, allow_blank=True)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class ReceiveSerializer(DeliveryMetaSerializer):
    items = ItemReceiptSerializer(many=True)
    close_short = serializers.BooleanField(default=False)


class ManualReceiveItemSerializer(serializers.Serializer):
    ingredient_id = serializers.IntegerField(required=False, allow_null=True)
    name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    base_unit = serializers.CharField(max_length=20, required=False, allow_blank=True)
    packages = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    contents_quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
    package_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    package_unit = serializers.CharField(max_length=50, required=False, allow_blank=True)

    def validate(self, data):
        if not data.get('ingredient_id') and not data.get('name'):
            raise serializers.ValidationError('Either ingredient_id or name is required')
        return data


class ManualReceiveSerializer(DeliveryMetaSerializer):
    supplier_name = serializers.CharField(max_length=150)
    supplier_contact = serializers.CharField(max_length=100, required=False, allow_blank=True)
    items = ManualReceiveItemSerializer(many=True)


class ShortageLineSerializer(serializers.Serializer):
    ingredient_id = serializers.IntegerField()
    shortage = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=0)


class PlanLineSerializer(serializers.Serializer):
    dish_id = serializers.IntegerField()
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))


class ShortageRequestSerializer(serializers.Serializer):
    """Either explicit shortages or a preparation plan to derive them from"""
    shortages = ShortageLineSerializer(many=True, required=False)
    plan = PlanLineSerializer(many=True, required=False)

    def validate(self, data):
        if not data.get('shortages') and not data.get('plan'):
            raise serializers.ValidationError('Provide shortages or a preparation plan')
        return data
