from rest_framework import serializers
from .models import Supplier, SupplierOffering


class SupplierOfferingSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    ingredient_name = serializers.CharField(source='ingredient.name', read_only=True)
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=4, read_only=True)

    class Meta:
        model = SupplierOffering
        fields = [
            'id', 'supplier', 'supplier_name', 'ingredient', 'ingredient_name',
            'package_unit', 'package_quantity', 'package_contents_quantity',
            'package_contents_unit', 'package_price', 'unit_cost',
            'lead_time_days', 'minimum_order_quantity', 'is_active',
        ]

    def validate(self, data):
        restaurant = self.context['request'].user.restaurant
        supplier = data.get('supplier') or getattr(self.instance, 'supplier', None)
        ingredient = data.get('ingredient') or getattr(self.instance, 'ingredient', None)

        if supplier and supplier.restaurant_id != restaurant.id:
            raise serializers.ValidationError({'supplier': 'Supplier does not belong to your restaurant'})
        if ingredient and ingredient.restaurant_id != restaurant.id:
            raise serializers.ValidationError({'ingredient': 'Ingredient does not belong to your restaurant'})

        return data


class SupplierSerializer(serializers.ModelSerializer):
    offering_count = serializers.SerializerMethodField()

    class Meta:
        model = Supplier
        fields = [
            'id', 'name', 'contact_person', 'email', 'phone', 'address',
            'payment_terms', 'credit_limit', 'lead_time_days', 'is_active', 'notes',
            'offering_count', 'created_at', 'updated_at',
        ]
        read_only_fields = ['created_at', 'updated_at']

    def get_offering_count(self, obj):
        return obj.offerings.filter(is_active=True).count()
