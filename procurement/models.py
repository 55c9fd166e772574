from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
from django.utils import timezone


class PurchaseOrder(models.Model):
    """
    Purchase orders sent to suppliers, or synthetic ones recording a manual
    delivery from a supplier that is not in the catalogue.
    """
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('pending', 'Pending Approval'),
        ('sent', 'Sent to Supplier'),
        ('confirmed', 'Confirmed by Supplier'),
        ('partially_delivered', 'Partially Delivered'),
        ('delivered', 'Delivered'),
        ('cancelled', 'Cancelled'),
    ]
    EDITABLE_STATUSES = ('draft', 'pending')
    CANCELLABLE_STATUSES = ('draft', 'pending', 'sent')
    RECEIVABLE_STATUSES = ('confirmed', 'partially_delivered', 'delivered')
    BILLABLE_STATUSES = ('partially_delivered', 'delivered')

    CONDITION_CHOICES = [
        ('excellent', 'Excellent'),
        ('good', 'Good'),
        ('fair', 'Fair'),
        ('poor', 'Poor'),
    ]
    SUPPLIER_RESPONSES = [
        ('confirm', 'Confirmed'),
        ('reject', 'Rejected'),
    ]

    # Basic info
    po_number = models.CharField(max_length=50, unique=True)
    restaurant = models.ForeignKey('accounts.Restaurant', on_delete=models.CASCADE, related_name='purchase_orders')
    supplier = models.ForeignKey(
        'suppliers.Supplier', on_delete=models.PROTECT,
        related_name='purchase_orders', null=True, blank=True
    )
    supplier_name = models.CharField(max_length=150, blank=True, help_text="Free-text supplier for manual receiving")
    supplier_contact = models.CharField(max_length=100, blank=True)
    is_manual_receive = models.BooleanField(default=False)

    # Status and dates
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')
    order_date = models.DateField(default=timezone.localdate)
    expected_delivery_date = models.DateField(null=True, blank=True)
    actual_delivery_date = models.DateField(null=True, blank=True)

    # Financial
    subtotal = models.DecimalField(
        max_digits=12, decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    tax_amount = models.DecimalField(
        max_digits=12, decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    tax_rate = models.DecimalField(
        max_digits=5, decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Percent applied to subtotal less discount"
    )
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    total_amount = models.DecimalField(
        max_digits=12, decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    # Notes and tracking
    notes = models.TextField(blank=True)
    delivery_instructions = models.TextField(blank=True)
    created_by = models.ForeignKey(
        'accounts.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='created_purchase_orders'
    )
    approved_by = models.ForeignKey(
        'accounts.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='approved_purchase_orders'
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    # Supplier self-service response
    supplier_response = models.CharField(max_length=10, choices=SUPPLIER_RESPONSES, blank=True)
    supplier_responded_at = models.DateTimeField(null=True, blank=True)

    # Receiving
    received_by = models.CharField(max_length=100, blank=True)
    delivery_condition = models.CharField(max_length=10, choices=CONDITION_CHOICES, blank=True)
    receiving_notes = models.TextField(blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.po_number} ({self.display_supplier_name})"

    @property
    def display_supplier_name(self):
        if self.supplier:
            return self.supplier.name
        return self.supplier_name or 'No Supplier'

    @property
    def is_editable(self):
        return self.status in self.EDITABLE_STATUSES

    @property
    def is_receivable(self):
        return self.status in self.RECEIVABLE_STATUSES

    @property
    def is_fully_received(self):
        return all(item.is_fully_received for item in self.items.all())

    def save(self, *args, **kwargs):
        if not self.po_number:
            po_year = timezone.now().year

            last_po = PurchaseOrder.objects.filter(
                po_number__startswith=f"PO{po_year}-"
            ).order_by('-po_number').first()

            if last_po:
                last_num = int(last_po.po_number.split('-')[-1])
                new_num = last_num + 1
            else:
                new_num = 1

            self.po_number = f"PO{po_year}-{new_num:04d}"

        super().save(*args, **kwargs)


class PurchaseOrderItem(models.Model):
    """
    One ingredient line of a purchase order. Quantities are in supplier
    packages; ``unit_price`` is the price of one package.
    """
    QUALITY_CHOICES = PurchaseOrder.CONDITION_CHOICES

    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
    ingredient = models.ForeignKey('inventory.Ingredient', on_delete=models.PROTECT, related_name='purchase_order_items')

    # Quantities
    ordered_quantity = models.DecimalField(
        max_digits=10, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    received_quantity = models.DecimalField(
        max_digits=10, decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    unit_of_measure = models.CharField(max_length=50, blank=True)

    # Pricing
    unit_price = models.DecimalField(
        max_digits=10, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    total_price = models.DecimalField(
        max_digits=12, decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    # Receiving inspection
    quality_rating = models.CharField(max_length=10, choices=QUALITY_CHOICES, blank=True)
    condition_notes = models.CharField(max_length=500, blank=True)
    has_discrepancy = models.BooleanField(default=False)
    discrepancy_reason = models.TextField(blank=True)

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.purchase_order.po_number} - {self.ingredient.name} x{self.ordered_quantity}"

    def save(self, *args, **kwargs):
        self.total_price = (Decimal(self.ordered_quantity) * Decimal(self.unit_price)).quantize(Decimal('0.01'))
        super().save(*args, **kwargs)

    @property
    def quantity_pending(self):
        return max(self.ordered_quantity - self.received_quantity, Decimal('0'))

    @property
    def is_fully_received(self):
        return self.received_quantity >= self.ordered_quantity
