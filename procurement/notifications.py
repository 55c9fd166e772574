"""
Email notifications for purchase order transitions
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.dispatch import receiver

from .links import supplier_response_links
from .signals import (
    purchase_order_submitted, purchase_order_sent, purchase_order_supplier_responded, purchase_order_cancelled,
)

logger = logging.getLogger(__name__)
User = get_user_model()


def _manager_emails(restaurant_id):
    return list(
        User.objects.filter(
            restaurant_id=restaurant_id,
            user_type__in=User.APPROVER_TYPES,
            is_active=True,
        ).exclude(email='').values_list('email', flat=True)
    )


@receiver(purchase_order_submitted)
def notify_managers_of_submission(sender, purchase_order, user=None, **kwargs):
    recipients = _manager_emails(purchase_order.restaurant_id)
    if not recipients:
        logger.info("No managers to notify for %s", purchase_order.po_number)
        return 0

    submitted_by = (user.get_full_name() or user.email) if user else 'system'
    return send_mail(
        subject=f"Purchase order {purchase_order.po_number} awaits approval",
        message=(
            f"{submitted_by} submitted {purchase_order.po_number} for "
            f"{purchase_order.display_supplier_name} (total {purchase_order.total_amount}).\n"
            f"Please review and approve it."
        ),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=recipients,
        fail_silently=False,
    )


@receiver(purchase_order_sent)
def notify_supplier_of_order(sender, purchase_order, user=None, **kwargs):
    supplier = purchase_order.supplier
    if not supplier or not supplier.email:
        logger.warning("%s has no supplier email; send it manually", purchase_order.po_number)
        return 0

    links = supplier_response_links(purchase_order)
    lines = '\n'.join(
        f"- {item.ingredient.name}: {item.ordered_quantity} {item.unit_of_measure} @ {item.unit_price}"
        for item in purchase_order.items.select_related('ingredient')
    )
    return send_mail(
        subject=f"Purchase order {purchase_order.po_number} from {purchase_order.restaurant.name}",
        message=(
            f"Hello {supplier.contact_person or supplier.name},\n\n"
            f"Please find our order {purchase_order.po_number}:\n{lines}\n\n"
            f"Total: {purchase_order.total_amount}\n"
            f"Expected delivery: {purchase_order.expected_delivery_date or 'to be agreed'}\n\n"
            f"Confirm: {links['confirm']}\n"
            f"Reject: {links['reject']}\n\n"
            f"These links expire in {settings.SUPPLIER_LINK_MAX_AGE_DAYS} days."
        ),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[supplier.email],
        fail_silently=False,
    )


@receiver(purchase_order_supplier_responded)
def notify_managers_of_supplier_response(sender, purchase_order, user=None, **kwargs):
    recipients = _manager_emails(purchase_order.restaurant_id)
    if not recipients:
        return 0

    verdict = 'confirmed' if purchase_order.supplier_response == 'confirm' else 'rejected'
    return send_mail(
        subject=f"{purchase_order.display_supplier_name} {verdict} {purchase_order.po_number}",
        message=f"The supplier {verdict} purchase order {purchase_order.po_number}.",
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=recipients,
        fail_silently=False,
    )


@receiver(purchase_order_cancelled)
def notify_supplier_of_cancellation(sender, purchase_order, user=None, **kwargs):
    # only orders that already reached the supplier
    supplier = purchase_order.supplier
    if purchase_order.approved_at is None or not supplier or not supplier.email:
        return 0

    reason = purchase_order.notes.rsplit('Cancelled: ', 1)[-1] if 'Cancelled: ' in purchase_order.notes else ''
    return send_mail(
        subject=f"Purchase order {purchase_order.po_number} cancelled",
        message=(
            f"Hello {supplier.contact_person or supplier.name},\n\n"
            f"{purchase_order.restaurant.name} has cancelled purchase order {purchase_order.po_number}. "
            f"Please do not deliver it."
            + (f"\n\nReason: {reason}" if reason else '')
        ),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[supplier.email],
        fail_silently=False,
    )
