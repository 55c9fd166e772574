from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal


class Supplier(models.Model):
    PAYMENT_TERMS = [
        ('COD', 'Cash on Delivery'),
        ('NET_7', 'Net 7 Days'),
        ('NET_15', 'Net 15 Days'),
        ('NET_30', 'Net 30 Days'),
        ('NET_60', 'Net 60 Days'),
        ('NET_90', 'Net 90 Days'),
    ]

    restaurant = models.ForeignKey('accounts.Restaurant', on_delete=models.CASCADE, related_name='suppliers')
    name = models.CharField(max_length=150)
    contact_person = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)

    payment_terms = models.CharField(max_length=10, choices=PAYMENT_TERMS, default='NET_30')
    credit_limit = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0'))]
    )
    lead_time_days = models.PositiveIntegerField(default=3, help_text="Days from order to delivery")
    is_active = models.BooleanField(default=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class SupplierOffering(models.Model):
    """
    A supplier's sellable package of an ingredient, e.g. a 25 kg sack of rice.

    ``package_contents_quantity`` is the package size in the ingredient's base
    unit and turns ordered packages into stock quantities.
    """
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name='offerings')
    ingredient = models.ForeignKey('inventory.Ingredient', on_delete=models.CASCADE, related_name='offerings')

    package_unit = models.CharField(max_length=50, help_text="e.g. sack, box, bottle")
    package_quantity = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('1.00'),
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    package_contents_quantity = models.DecimalField(
        max_digits=12, decimal_places=3,
        validators=[MinValueValidator(Decimal('0.001'))]
    )
    package_contents_unit = models.CharField(max_length=20)
    package_price = models.DecimalField(
        max_digits=10, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    lead_time_days = models.PositiveIntegerField(default=0)
    minimum_order_quantity = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0'))],
        help_text="Most packages per order; 0 means no cap"
    )
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ['supplier', 'ingredient']
        ordering = ['ingredient__name', 'package_price']

    def __str__(self):
        return f"{self.supplier.name} - {self.ingredient.name} ({self.package_contents_quantity} {self.package_contents_unit}/{self.package_unit})"

    @property
    def unit_cost(self):
        """Price per base unit of the ingredient"""
        return self.package_price / self.package_contents_quantity
