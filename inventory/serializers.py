from decimal import Decimal

from django.db import transaction
from rest_framework import serializers

from .models import Ingredient, StockMovement, Dish, DishIngredient, DamageSpoilageLog
from .units import is_known_unit, normalize_unit, can_convert


class IngredientSerializer(serializers.ModelSerializer):
    """Stock, packages and cost are ledger-owned and never writable here"""
    stock_value = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    needs_reorder = serializers.BooleanField(read_only=True)

    class Meta:
        model = Ingredient
        fields = [
            'id', 'name', 'base_unit', 'current_stock', 'packages', 'cost_per_unit',
            'reorder_level', 'stock_value', 'needs_reorder', 'created_at', 'updated_at',
        ]
        read_only_fields = ['current_stock', 'packages', 'cost_per_unit', 'created_at', 'updated_at']

    def validate_base_unit(self, value):
        if not is_known_unit(value):
            raise serializers.ValidationError(f"Unknown unit '{value}'")
        return normalize_unit(value)

    def validate_name(self, value):
        restaurant = self.context['request'].user.restaurant
        queryset = Ingredient.objects.filter(restaurant=restaurant, name__iexact=value.strip())
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('An ingredient with this name already exists')
        return value.strip()

    def validate(self, data):
        # changing the unit would reinterpret every recorded quantity
        if self.instance and 'base_unit' in data and data['base_unit'] != self.instance.base_unit:
            if self.instance.movements.exists():
                raise serializers.ValidationError({'base_unit': 'Cannot change the unit of an ingredient with stock history'})
        return data


class StockMovementSerializer(serializers.ModelSerializer):
    ingredient_name = serializers.CharField(source='ingredient.name', read_only=True)
    movement_type_display = serializers.CharField(source='get_movement_type_display', read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = [
            'id', 'ingredient', 'ingredient_name', 'movement_type', 'movement_type_display',
            'reference_number', 'quantity', 'package_count', 'unit_cost',
            'stock_before', 'stock_after', 'cost_before', 'cost_after', 'flagged_negative',
            'user_email', 'timestamp', 'notes',
        ]
        read_only_fields = fields


class DishIngredientSerializer(serializers.ModelSerializer):
    ingredient_name = serializers.CharField(source='ingredient.name', read_only=True)

    class Meta:
        model = DishIngredient
        fields = ['id', 'ingredient', 'ingredient_name', 'quantity_needed', 'unit']


class DishSerializer(serializers.ModelSerializer):
    ingredients = DishIngredientSerializer(source='dish_ingredients', many=True, required=False)

    class Meta:
        model = Dish
        fields = ['id', 'name', 'price', 'is_available', 'ingredients']

    def validate_ingredients(self, value):
        restaurant = self.context['request'].user.restaurant
        seen = set()
        for line in value:
            ingredient = line['ingredient']
            if ingredient.restaurant_id != restaurant.id:
                raise serializers.ValidationError(f"{ingredient.name} does not belong to your restaurant")
            if ingredient.pk in seen:
                raise serializers.ValidationError(f"{ingredient.name} is listed twice")
            seen.add(ingredient.pk)
            unit = line.get('unit') or ingredient.base_unit
            if not can_convert(unit, ingredient.base_unit):
                raise serializers.ValidationError(
                    f"{unit} cannot be converted to {ingredient.base_unit} for {ingredient.name}"
                )
        return value

    def _write_recipe(self, dish, lines):
        dish.dish_ingredients.all().delete()
        for line in lines:
            DishIngredient.objects.create(dish=dish, **line)

    @transaction.atomic
    def create(self, validated_data):
        lines = validated_data.pop('dish_ingredients', [])
        dish = Dish.objects.create(**validated_data)
        self._write_recipe(dish, lines)
        return dish

    @transaction.atomic
    def update(self, instance, validated_data):
        lines = validated_data.pop('dish_ingredients', None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save()
        if lines is not None:
            self._write_recipe(instance, lines)
        return instance


class DishSaleSerializer(serializers.Serializer):
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    reference = serializers.CharField(max_length=50, required=False, allow_blank=True)


class PlanLineSerializer(serializers.Serializer):
    dish_id = serializers.IntegerField()
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))


class PlanAvailabilitySerializer(serializers.Serializer):
    plan = PlanLineSerializer(many=True)

    def validate_plan(self, value):
        if not value:
            raise serializers.ValidationError('Preparation plan is empty')
        return value


class DamageSpoilageLogSerializer(serializers.ModelSerializer):
    ingredient_name = serializers.CharField(source='ingredient.name', read_only=True)
    reported_by_email = serializers.EmailField(source='reported_by.email', read_only=True, default=None)

    class Meta:
        model = DamageSpoilageLog
        fields = [
            'id', 'ingredient', 'ingredient_name', 'log_type', 'quantity', 'unit', 'quantity_base',
            'estimated_cost', 'reason', 'notes', 'incident_date', 'reported_by_email', 'created_at',
        ]
        read_only_fields = fields


class DamageEntrySerializer(serializers.Serializer):
    ingredient_id = serializers.IntegerField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
    unit = serializers.CharField(max_length=20, required=False, allow_blank=True)
    estimated_cost = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True,
                                              min_value=0)
    log_type = serializers.ChoiceField(choices=DamageSpoilageLog.LOG_TYPES, required=False)
    reason = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class DamageReportSerializer(serializers.Serializer):
    log_type = serializers.ChoiceField(choices=DamageSpoilageLog.LOG_TYPES, default='damage')
    incident_date = serializers.DateField(required=False)
    reason = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    items = DamageEntrySerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError('At least one item is required')
        return value
