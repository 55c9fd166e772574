from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
from django.utils import timezone


def next_sequence_number(model, field, prefix, width):
    """Next ``{prefix}{n:0width}`` value for the year, following the last one issued"""
    last = model.objects.filter(**{f"{field}__startswith": prefix}).order_by(f"-{field}").first()
    if last:
        new_num = int(getattr(last, field).split('-')[-1]) + 1
    else:
        new_num = 1
    return f"{prefix}{new_num:0{width}d}"


class SupplierBill(models.Model):
    """
    Supplier bill raised from a delivered purchase order.

    ``outstanding_amount`` always equals ``total_amount - paid_amount``;
    only ``billing.services.PaymentLedger`` changes the paid side.
    """
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('partially_paid', 'Partially Paid'),
        ('paid', 'Paid'),
        ('overdue', 'Overdue'),
        ('cancelled', 'Cancelled'),
    ]
    CLOSED_STATUSES = ('paid', 'cancelled')

    bill_number = models.CharField(max_length=50, unique=True)
    purchase_order = models.OneToOneField(
        'procurement.PurchaseOrder', on_delete=models.PROTECT,
        related_name='bill', null=True, blank=True
    )
    restaurant = models.ForeignKey('accounts.Restaurant', on_delete=models.CASCADE, related_name='supplier_bills')
    supplier = models.ForeignKey(
        'suppliers.Supplier', on_delete=models.PROTECT,
        related_name='bills', null=True, blank=True
    )
    supplier_invoice_number = models.CharField(max_length=100, blank=True)

    bill_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField()
    payment_terms = models.CharField(max_length=10, default='NET_30')

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    paid_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    outstanding_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey('accounts.User', on_delete=models.SET_NULL, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-bill_date', '-id']

    def __str__(self):
        return f"{self.bill_number} - {self.supplier_display_name} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        if not self.bill_number:
            self.bill_number = next_sequence_number(
                SupplierBill, 'bill_number', f"BILL-{timezone.now().year}-", 6
            )
        super().save(*args, **kwargs)

    @property
    def supplier_display_name(self):
        if self.supplier:
            return self.supplier.name
        if self.purchase_order:
            return self.purchase_order.supplier_name or 'Manual supplier'
        return 'Unknown supplier'

    @property
    def can_receive_payment(self):
        return self.outstanding_amount > 0 and self.status not in self.CLOSED_STATUSES

    @property
    def is_overdue(self):
        return (
            self.outstanding_amount > 0
            and self.status not in self.CLOSED_STATUSES
            and self.due_date < timezone.localdate()
        )


class SupplierPayment(models.Model):
    """
    Payment made against a supplier bill. Never deleted: a mistaken payment is
    cancelled, which reverses its effect on the bill.
    """
    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('gcash', 'GCash'),
        ('bank_transfer', 'Bank Transfer'),
        ('check', 'Check'),
        ('credit_card', 'Credit Card'),
        ('paypal', 'PayPal'),
        ('paymongo', 'PayMongo'),
        ('online', 'Online'),
        ('other', 'Other'),
    ]
    STATUS_CHOICES = [
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    bill = models.ForeignKey(SupplierBill, on_delete=models.PROTECT, related_name='payments')
    payment_reference = models.CharField(max_length=100, unique=True)

    # Payment details
    amount = models.DecimalField(
        max_digits=12, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES)
    payment_date = models.DateField(default=timezone.localdate)
    transaction_reference = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')

    # Processing
    recorded_by = models.ForeignKey(
        'accounts.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='recorded_supplier_payments'
    )
    cancelled_by = models.ForeignKey(
        'accounts.User', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='cancelled_supplier_payments'
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-payment_date', '-id']

    def __str__(self):
        return f"{self.payment_reference} - {self.amount} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        if not self.payment_reference:
            self.payment_reference = next_sequence_number(
                SupplierPayment, 'payment_reference', f"PAY-{timezone.now().year}-", 6
            )
        super().save(*args, **kwargs)
