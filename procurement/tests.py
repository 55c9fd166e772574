import time
from datetime import timedelta
from decimal import Decimal
from smtplib import SMTPException
from unittest import mock

from django.core import mail
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status

from backoffice_api.exceptions import (
    ValidationError, NotFoundError, PermissionDeniedError, InvalidTransitionError,
)
from tests.helpers import create_restaurant, create_ingredient, create_supplier, create_offering, create_order
from .lifecycle import PurchaseOrderLifecycle
from .links import make_supplier_token, verify_supplier_token, supplier_response_links
from .models import PurchaseOrder, PurchaseOrderItem


class ProcurementTestMixin:

    def build_catalogue(self):
        self.restaurant, self.owner, self.purchaser = create_restaurant()
        self.rice = create_ingredient(self.restaurant, name='Jasmine Rice')
        self.chicken = create_ingredient(self.restaurant, name='Chicken Thigh')
        self.supplier = create_supplier(self.restaurant, lead_time_days=3)
        self.rice_offering = create_offering(
            self.supplier, self.rice, package_price='1250.00', contents='25000', package_unit='sack',
            lead_time_days=5,
        )
        self.chicken_offering = create_offering(
            self.supplier, self.chicken, package_price='480.00', contents='2000', package_unit='tray',
        )

    def draft(self, **overrides):
        options = {
            'user': self.purchaser,
            'discount_amount': Decimal('40'),
            'tax_rate': Decimal('12'),
        }
        options.update(overrides)
        items = [
            {'ingredient_id': self.rice.pk, 'ordered_quantity': Decimal('2')},
            {'ingredient_id': self.chicken.pk, 'ordered_quantity': Decimal('3')},
        ]
        return self.lifecycle.create_purchase_order(self.restaurant, self.supplier.pk, items, **options)


class PurchaseOrderCreateTest(ProcurementTestMixin, TestCase):
    """Test drafting and editing purchase orders"""

    def setUp(self):
        self.build_catalogue()
        self.lifecycle = PurchaseOrderLifecycle()

    def test_totals(self):
        purchase_order = self.draft()

        self.assertEqual(purchase_order.status, 'draft')
        self.assertEqual(purchase_order.subtotal, Decimal('3940.00'))
        self.assertEqual(purchase_order.tax_amount, Decimal('468.00'))
        self.assertEqual(purchase_order.total_amount, Decimal('4368.00'))
        self.assertTrue(purchase_order.po_number.startswith(f"PO{timezone.now().year}-"))

    def test_unit_price_defaults_to_package_price(self):
        purchase_order = self.draft()
        item = purchase_order.items.get(ingredient=self.rice)
        self.assertEqual(item.unit_price, Decimal('1250.00'))
        self.assertEqual(item.unit_of_measure, 'sack')
        self.assertEqual(item.total_price, Decimal('2500.00'))

    def test_default_delivery_date_uses_longest_lead_time(self):
        purchase_order = self.draft()
        self.assertEqual(purchase_order.expected_delivery_date, timezone.localdate() + timedelta(days=5))

    def test_sequential_po_numbers(self):
        first = self.draft()
        second = self.draft()
        self.assertEqual(int(second.po_number.split('-')[-1]), int(first.po_number.split('-')[-1]) + 1)

    def test_order_cap(self):
        self.rice_offering.minimum_order_quantity = Decimal('5')
        self.rice_offering.save()
        items = [{'ingredient_id': self.rice.pk, 'ordered_quantity': Decimal('6')}]

        with self.assertRaises(ValidationError):
            self.lifecycle.create_purchase_order(self.restaurant, self.supplier.pk, items, user=self.purchaser)

        purchase_order = self.lifecycle.create_purchase_order(
            self.restaurant, self.supplier.pk, items, user=self.purchaser, enforce_order_cap=False,
        )
        self.assertEqual(purchase_order.items.get().ordered_quantity, Decimal('6'))

    def test_discount_cannot_exceed_subtotal(self):
        with self.assertRaises(ValidationError):
            self.draft(discount_amount=Decimal('5000'))
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_rejects_zero_quantity(self):
        items = [{'ingredient_id': self.rice.pk, 'ordered_quantity': Decimal('0')}]
        with self.assertRaises(ValidationError):
            self.lifecycle.create_purchase_order(self.restaurant, self.supplier.pk, items)

    def test_rejects_inactive_supplier(self):
        self.supplier.is_active = False
        self.supplier.save()
        with self.assertRaises(ValidationError):
            self.draft()

    def test_rejects_foreign_supplier_and_ingredient(self):
        other, _, _ = create_restaurant('Other Place')
        foreign_supplier = create_supplier(other, name='Elsewhere Foods')
        with self.assertRaises(NotFoundError):
            self.lifecycle.create_purchase_order(
                self.restaurant, foreign_supplier.pk,
                [{'ingredient_id': self.rice.pk, 'ordered_quantity': Decimal('1')}],
            )

        flour = create_ingredient(other, name='Flour')
        with self.assertRaises(NotFoundError):
            self.lifecycle.create_purchase_order(
                self.restaurant, self.supplier.pk,
                [{'ingredient_id': flour.pk, 'ordered_quantity': Decimal('1'), 'unit_price': Decimal('50')}],
            )

    def test_update_replaces_items(self):
        purchase_order = self.draft()

        updated = self.lifecycle.update_purchase_order(
            purchase_order.pk, user=self.purchaser,
            items=[{'ingredient_id': self.chicken.pk, 'ordered_quantity': Decimal('1')}],
            discount_amount=Decimal('0'),
        )

        self.assertEqual(updated.items.count(), 1)
        self.assertEqual(updated.subtotal, Decimal('480.00'))
        self.assertEqual(updated.total_amount, Decimal('537.60'))

    def test_update_after_sending_is_rejected(self):
        purchase_order = create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')], status='sent')
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.update_purchase_order(purchase_order.pk, notes='Too late')

    def test_delete_only_while_editable(self):
        purchase_order = self.draft()
        self.lifecycle.delete(purchase_order.pk, user=self.purchaser)
        self.assertFalse(PurchaseOrder.objects.filter(pk=purchase_order.pk).exists())

        confirmed = create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')])
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.delete(confirmed.pk)


class PurchaseOrderTransitionTest(ProcurementTestMixin, TestCase):
    """Test approval, supplier response and cancellation"""

    def setUp(self):
        self.build_catalogue()
        self.lifecycle = PurchaseOrderLifecycle()
        self.purchase_order = self.draft()

    def test_submit_emails_managers(self):
        result = self.lifecycle.submit_for_approval(self.purchase_order.pk, user=self.purchaser)

        self.assertEqual(result.order.status, 'pending')
        self.assertEqual(result.warnings, [])
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['owner@casaluna.ph'])
        self.assertIn('Paolo Purchaser', mail.outbox[0].body)

    def test_submit_requires_draft(self):
        self.lifecycle.submit_for_approval(self.purchase_order.pk)
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.submit_for_approval(self.purchase_order.pk)

    def test_purchaser_cannot_approve(self):
        self.lifecycle.submit_for_approval(self.purchase_order.pk)
        with self.assertRaises(PermissionDeniedError):
            self.lifecycle.approve_and_send(self.purchase_order.pk, user=self.purchaser)

        self.purchase_order.refresh_from_db()
        self.assertEqual(self.purchase_order.status, 'pending')

    def test_owner_of_other_restaurant_cannot_approve(self):
        _, other_owner, _ = create_restaurant('Other Place')
        self.lifecycle.submit_for_approval(self.purchase_order.pk)
        with self.assertRaises(PermissionDeniedError):
            self.lifecycle.approve_and_send(self.purchase_order.pk, user=other_owner)

    def test_approve_requires_pending(self):
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.approve_and_send(self.purchase_order.pk, user=self.owner)

    def test_approve_sends_order_to_supplier(self):
        self.lifecycle.submit_for_approval(self.purchase_order.pk)
        mail.outbox = []

        result = self.lifecycle.approve_and_send(self.purchase_order.pk, user=self.owner)

        self.assertEqual(result.order.status, 'sent')
        self.assertEqual(result.order.approved_by, self.owner)
        self.assertIsNotNone(result.order.approved_at)
        self.assertEqual(mail.outbox[0].to, ['orders@metroproduce.ph'])
        self.assertIn(f"supplier-response/{self.purchase_order.pk}/?action=confirm", mail.outbox[0].body)
        self.assertIn('Jasmine Rice: 2.00 sack', mail.outbox[0].body)

    def test_notification_failure_becomes_warning(self):
        with mock.patch('procurement.notifications.send_mail', side_effect=SMTPException('Connection refused')):
            with self.assertLogs('procurement.lifecycle', 'WARNING'):
                result = self.lifecycle.submit_for_approval(self.purchase_order.pk, user=self.purchaser)

        self.assertTrue(result.partially_succeeded)
        self.assertIn('Notification notify_managers_of_submission failed', result.warnings[0])
        self.purchase_order.refresh_from_db()
        self.assertEqual(self.purchase_order.status, 'pending')

    def send(self):
        self.lifecycle.submit_for_approval(self.purchase_order.pk)
        self.lifecycle.approve_and_send(self.purchase_order.pk, user=self.owner)
        mail.outbox = []

    def test_supplier_confirms(self):
        self.send()
        token = make_supplier_token(self.purchase_order, 'confirm')

        result = self.lifecycle.supplier_respond(self.purchase_order.pk, token, 'confirm')

        self.assertEqual(result.order.status, 'confirmed')
        self.assertEqual(result.order.supplier_response, 'confirm')
        self.assertIsNotNone(result.order.supplier_responded_at)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('confirmed', mail.outbox[0].subject)

    def test_repeat_visit_is_harmless(self):
        self.send()
        token = make_supplier_token(self.purchase_order, 'confirm')
        self.lifecycle.supplier_respond(self.purchase_order.pk, token, 'confirm')

        result = self.lifecycle.supplier_respond(self.purchase_order.pk, token, 'confirm')

        self.assertEqual(result.order.status, 'confirmed')
        self.assertEqual(len(mail.outbox), 1)

    def test_cannot_reject_after_confirming(self):
        self.send()
        self.lifecycle.supplier_respond(
            self.purchase_order.pk, make_supplier_token(self.purchase_order, 'confirm'), 'confirm',
        )
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.supplier_respond(
                self.purchase_order.pk, make_supplier_token(self.purchase_order, 'reject'), 'reject',
            )

    def test_supplier_rejects(self):
        self.send()
        result = self.lifecycle.supplier_respond(
            self.purchase_order.pk, make_supplier_token(self.purchase_order, 'reject'), 'reject',
        )
        self.assertEqual(result.order.status, 'cancelled')
        self.assertEqual(result.order.supplier_response, 'reject')

    def test_supplier_cannot_confirm_draft(self):
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.supplier_respond(
                self.purchase_order.pk, make_supplier_token(self.purchase_order, 'confirm'), 'confirm',
            )

    def test_cancel_appends_reason(self):
        self.send()
        result = self.lifecycle.cancel(self.purchase_order.pk, user=self.owner, reason='Menu changed')

        self.assertEqual(result.order.status, 'cancelled')
        self.assertIn('Cancelled: Menu changed', result.order.notes)
        self.assertEqual(result.warnings, [])
        self.assertEqual(mail.outbox[0].to, ['orders@metroproduce.ph'])
        self.assertIn('cancelled', mail.outbox[0].subject)
        self.assertIn('Reason: Menu changed', mail.outbox[0].body)

    def test_cancelling_unsent_order_emails_nobody(self):
        self.lifecycle.submit_for_approval(self.purchase_order.pk)
        mail.outbox = []

        self.lifecycle.cancel(self.purchase_order.pk, user=self.purchaser)

        self.assertEqual(mail.outbox, [])

    def test_cannot_cancel_confirmed(self):
        confirmed = create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')])
        with self.assertRaises(InvalidTransitionError):
            self.lifecycle.cancel(confirmed.pk)


class SupplierLinkTest(ProcurementTestMixin, TestCase):
    """Test signed supplier response links"""

    def setUp(self):
        self.build_catalogue()
        self.purchase_order = create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')], status='sent')

    def test_valid_token(self):
        token = make_supplier_token(self.purchase_order, 'confirm')
        payload = verify_supplier_token(self.purchase_order.pk, token, 'confirm')
        self.assertEqual(payload['po'], self.purchase_order.pk)

    def test_expired_token(self):
        with mock.patch('django.core.signing.time.time', return_value=time.time() - 8 * 86400):
            token = make_supplier_token(self.purchase_order, 'confirm')

        with self.assertRaises(PermissionDeniedError) as context:
            verify_supplier_token(self.purchase_order.pk, token, 'confirm')
        self.assertIn('expired', context.exception.message)

    def test_tampered_token(self):
        token = make_supplier_token(self.purchase_order, 'confirm')
        with self.assertRaises(PermissionDeniedError):
            verify_supplier_token(self.purchase_order.pk, token[:-2] + 'xx', 'confirm')

    def test_token_bound_to_order_and_action(self):
        token = make_supplier_token(self.purchase_order, 'confirm')
        other = create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')], status='sent')

        with self.assertRaises(PermissionDeniedError):
            verify_supplier_token(self.purchase_order.pk, token, 'reject')
        with self.assertRaises(PermissionDeniedError):
            verify_supplier_token(other.pk, token, 'confirm')

    def test_unknown_action(self):
        token = make_supplier_token(self.purchase_order, 'confirm')
        with self.assertRaises(ValidationError):
            verify_supplier_token(self.purchase_order.pk, token, 'maybe')

    def test_links_carry_both_actions(self):
        links = supplier_response_links(self.purchase_order)
        self.assertEqual(set(links), {'confirm', 'reject'})
        self.assertIn('action=reject&token=', links['reject'])


class PurchaseOrderAPITest(ProcurementTestMixin, APITestCase):
    """Test purchase order endpoints"""

    def setUp(self):
        self.build_catalogue()
        self.client.force_authenticate(user=self.purchaser)

    def create_via_api(self):
        return self.client.post(reverse('purchaseorder-list'), {
            'supplier_id': self.supplier.pk,
            'tax_rate': '12',
            'items': [
                {'ingredient_id': self.rice.pk, 'ordered_quantity': '2'},
                {'ingredient_id': self.chicken.pk, 'ordered_quantity': '1', 'unit_price': '500.00'},
            ],
        }, format='json')

    def test_create(self):
        response = self.create_via_api()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'draft')
        self.assertEqual(response.data['subtotal'], '3000.00')
        self.assertEqual(response.data['total_amount'], '3360.00')
        self.assertEqual(len(response.data['items']), 2)
        self.assertEqual(response.data['created_by_email'], 'purchasing@casaluna.ph')

    def test_create_requires_items(self):
        response = self.client.post(reverse('purchaseorder-list'), {'supplier_id': self.supplier.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_submit_and_approve(self):
        purchase_order_id = self.create_via_api().data['id']

        response = self.client.post(reverse('purchaseorder-submit', args=[purchase_order_id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['purchase_order']['status'], 'pending')

        response = self.client.post(reverse('purchaseorder-approve', args=[purchase_order_id]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'permission_denied')

        self.client.force_authenticate(user=self.owner)
        response = self.client.post(reverse('purchaseorder-approve', args=[purchase_order_id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['purchase_order']['status'], 'sent')
        self.assertEqual(response.data['warnings'], [])

    def test_edit_after_sending_conflicts(self):
        purchase_order = create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')], status='sent')

        response = self.client.patch(reverse('purchaseorder-detail', args=[purchase_order.pk]),
                                     {'notes': 'Deliver early'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'invalid_transition')

    def test_delete_draft(self):
        purchase_order_id = self.create_via_api().data['id']
        response = self.client.delete(reverse('purchaseorder-detail', args=[purchase_order_id]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(PurchaseOrderItem.objects.exists())

    def test_cancel(self):
        purchase_order_id = self.create_via_api().data['id']
        response = self.client.post(reverse('purchaseorder-cancel', args=[purchase_order_id]),
                                    {'reason': 'Duplicate'}, format='json')
        self.assertEqual(response.data['purchase_order']['status'], 'cancelled')

    def test_other_restaurants_orders_are_hidden(self):
        other, _, _ = create_restaurant('Other Place')
        foreign = create_order(other, create_supplier(other, name='Elsewhere Foods'), [])

        response = self.client.get(reverse('purchaseorder-detail', args=[foreign.pk]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_filter_by_status(self):
        create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')], status='sent')
        self.create_via_api()

        response = self.client.get(reverse('purchaseorder-list'), {'status': 'sent'})
        self.assertEqual([row['status'] for row in response.data['results']], ['sent'])

    def test_links(self):
        purchase_order = create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')], status='sent')
        response = self.client.get(reverse('purchaseorder-links', args=[purchase_order.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('confirm', response.data['links'])


class SupplierResponseViewTest(ProcurementTestMixin, APITestCase):
    """Test the public supplier response endpoint"""

    def setUp(self):
        self.build_catalogue()
        self.purchase_order = create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')], status='sent')
        self.url = reverse('supplier_response', args=[self.purchase_order.pk])

    def test_confirm_without_login(self):
        token = make_supplier_token(self.purchase_order, 'confirm')
        response = self.client.get(self.url, {'action': 'confirm', 'token': token})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'confirmed')
        self.assertIn('confirmed', response.data['message'])

    def test_reject_by_post(self):
        token = make_supplier_token(self.purchase_order, 'reject')
        response = self.client.post(self.url, {'action': 'reject', 'token': token}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')

    def test_tampered_token_is_forbidden(self):
        response = self.client.get(self.url, {'action': 'confirm', 'token': 'not-a-real-token'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.purchase_order.refresh_from_db()
        self.assertEqual(self.purchase_order.status, 'sent')

    def test_invalid_action(self):
        token = make_supplier_token(self.purchase_order, 'confirm')
        response = self.client.get(self.url, {'action': 'maybe', 'token': token})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
