"""
Signed, time-limited links that let a supplier confirm or reject an order
without logging in.
"""

from datetime import timedelta

from django.conf import settings
from django.core import signing
from django.urls import reverse

from backoffice_api.exceptions import PermissionDeniedError, ValidationError

SIGNING_SALT = 'procurement.supplier-response'
SUPPLIER_ACTIONS = ('confirm', 'reject')


def make_supplier_token(purchase_order, action):
    return signing.dumps({'po': purchase_order.pk, 'action': action}, salt=SIGNING_SALT)


def verify_supplier_token(purchase_order_id, token, action):
    """Raise unless ``token`` was issued for this order and action and has not expired"""
    if action not in SUPPLIER_ACTIONS:
        raise ValidationError(f"Invalid action '{action}'", {'allowed_actions': list(SUPPLIER_ACTIONS)})

    max_age = timedelta(days=settings.SUPPLIER_LINK_MAX_AGE_DAYS)
    try:
        payload = signing.loads(token or '', salt=SIGNING_SALT, max_age=max_age)
    except signing.SignatureExpired:
        raise PermissionDeniedError('This link has expired')
    except signing.BadSignature:
        raise PermissionDeniedError('Invalid or tampered link')

    if str(payload.get('po')) != str(purchase_order_id) or payload.get('action') != action:
        raise PermissionDeniedError('This link does not match the requested order')
    return payload


def supplier_response_links(purchase_order):
    base_url = settings.SUPPLIER_RESPONSE_BASE_URL.rstrip('/')
    path = reverse('supplier_response', args=[purchase_order.pk])
    return {
        action: f"{base_url}{path}?action={action}&token={make_supplier_token(purchase_order, action)}"
        for action in SUPPLIER_ACTIONS
    }
