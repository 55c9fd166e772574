from django.db import models
from django.core.validators import MinValueValidator
from django.contrib.auth import get_user_model
from django.utils import timezone
from decimal import Decimal

User = get_user_model()


class Ingredient(models.Model):
    """
    Restaurant-scoped stock item.

    ``current_stock``, ``packages`` and ``cost_per_unit`` are owned by
    ``inventory.services.StockLedger`` and are never written directly.
    """
    restaurant = models.ForeignKey('accounts.Restaurant', on_delete=models.CASCADE, related_name='ingredients')
    name = models.CharField(max_length=150)
    base_unit = models.CharField(max_length=20, default='g', help_text="Unit stock is counted in (g, ml, pcs...)")

    current_stock = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    packages = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    cost_per_unit = models.DecimalField(
        max_digits=12, decimal_places=4, default=Decimal('0.0000'),
        help_text="Weighted-average cost per base unit"
    )
    reorder_level = models.DecimalField(
        max_digits=12, decimal_places=3, default=Decimal('0.000'),
        validators=[MinValueValidator(Decimal('0'))]
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.current_stock} {self.base_unit})"

    @property
    def stock_value(self):
        return (self.current_stock * self.cost_per_unit).quantize(Decimal('0.01'))

    @property
    def needs_reorder(self):
        return self.current_stock <= self.reorder_level


class StockMovement(models.Model):
    """Audit trail for every ledger mutation"""
    MOVEMENT_TYPES = [
        ('receive', 'Supplier Delivery Received'),
        ('manual_receive', 'Manual Delivery Received'),
        ('sale', 'Used in Dish Sale'),
        ('waste', 'Waste'),
        ('damage', 'Damage'),
        ('spoilage', 'Spoilage'),
    ]
    INCREASE_TYPES = ('receive', 'manual_receive')

    ingredient = models.ForeignKey(Ingredient, on_delete=models.PROTECT, related_name='movements')
    movement_type = models.CharField(max_length=20, choices=MOVEMENT_TYPES)
    reference_number = models.CharField(max_length=50, blank=True)  # PO number, sale ref, log id

    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    package_count = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    unit_cost = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)

    stock_before = models.DecimalField(max_digits=12, decimal_places=3)
    stock_after = models.DecimalField(max_digits=12, decimal_places=3)
    cost_before = models.DecimalField(max_digits=12, decimal_places=4)
    cost_after = models.DecimalField(max_digits=12, decimal_places=4)
    flagged_negative = models.BooleanField(default=False)

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-timestamp', '-id']

    def __str__(self):
        return f"{self.get_movement_type_display()} - {self.ingredient.name} - {self.quantity}"


class Dish(models.Model):
    restaurant = models.ForeignKey('accounts.Restaurant', on_delete=models.CASCADE, related_name='dishes')
    name = models.CharField(max_length=150)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    is_available = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'dishes'

    def __str__(self):
        return self.name


class DishIngredient(models.Model):
    """Recipe line: how much of an ingredient one portion uses"""
    dish = models.ForeignKey(Dish, on_delete=models.CASCADE, related_name='dish_ingredients')
    ingredient = models.ForeignKey(Ingredient, on_delete=models.PROTECT, related_name='dish_usages')
    quantity_needed = models.DecimalField(
        max_digits=12, decimal_places=3,
        validators=[MinValueValidator(Decimal('0.001'))]
    )
    unit = models.CharField(max_length=20, blank=True, help_text="Blank means the ingredient's base unit")

    class Meta:
        unique_together = ['dish', 'ingredient']

    def __str__(self):
        return f"{self.dish.name}: {self.quantity_needed} {self.unit or self.ingredient.base_unit} {self.ingredient.name}"


class DamageSpoilageLog(models.Model):
    """Damaged, spoiled or wasted stock written off an ingredient"""
    LOG_TYPES = [
        ('damage', 'Damage'),
        ('spoilage', 'Spoilage'),
        ('waste', 'Waste'),
    ]

    restaurant = models.ForeignKey('accounts.Restaurant', on_delete=models.CASCADE, related_name='damage_logs')
    ingredient = models.ForeignKey(Ingredient, on_delete=models.PROTECT, related_name='damage_logs')
    log_type = models.CharField(max_length=10, choices=LOG_TYPES)

    quantity = models.DecimalField(max_digits=12, decimal_places=3, validators=[MinValueValidator(Decimal('0.001'))])
    unit = models.CharField(max_length=20)
    quantity_base = models.DecimalField(max_digits=12, decimal_places=3)
    estimated_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    incident_date = models.DateField(default=timezone.localdate)
    reported_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-incident_date', '-created_at']

    def __str__(self):
        return f"{self.get_log_type_display()} - {self.ingredient.name} - {self.quantity} {self.unit}"
