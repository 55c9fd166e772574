from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status
from decimal import Decimal

from accounts.models import User
from tests.helpers import create_restaurant, create_ingredient, create_supplier, create_offering
from .models import Supplier, SupplierOffering


class SupplierOfferingModelTest(TestCase):
    """Test SupplierOffering model functionality"""

    def setUp(self):
        self.restaurant, self.owner, _ = create_restaurant()
        self.rice = create_ingredient(self.restaurant)
        self.supplier = create_supplier(self.restaurant)

    def test_unit_cost_is_price_per_base_unit(self):
        offering = create_offering(self.supplier, self.rice, package_price='1250.00', contents='25000')
        self.assertEqual(offering.unit_cost, Decimal('0.05'))

    def test_defaults(self):
        offering = create_offering(self.supplier, self.rice)
        self.assertTrue(offering.is_active)
        self.assertEqual(offering.minimum_order_quantity, Decimal('0.00'))
        self.assertEqual(self.supplier.payment_terms, 'NET_30')

    def test_string_representation(self):
        offering = create_offering(self.supplier, self.rice, contents='1000')
        self.assertIn('Metro Produce - Jasmine Rice', str(offering))


class SupplierAPITest(APITestCase):
    """Test supplier and offering endpoints"""

    def setUp(self):
        self.restaurant, self.owner, self.purchaser = create_restaurant()
        self.rice = create_ingredient(self.restaurant)
        self.supplier = create_supplier(self.restaurant)
        self.client.force_authenticate(user=self.purchaser)

    def test_list_is_scoped_to_restaurant(self):
        other_restaurant, _, _ = create_restaurant('Other Place')
        create_supplier(other_restaurant, name='Elsewhere Foods')

        response = self.client.get(reverse('supplier-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = [row['name'] for row in response.data['results']]
        self.assertEqual(names, ['Metro Produce'])

    def test_create_supplier_assigns_restaurant(self):
        response = self.client.post(reverse('supplier-list'), {
            'name': 'Island Seafood',
            'email': 'sales@islandseafood.ph',
            'payment_terms': 'NET_15',
            'lead_time_days': 2,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        supplier = Supplier.objects.get(name='Island Seafood')
        self.assertEqual(supplier.restaurant, self.restaurant)
        self.assertEqual(supplier.payment_terms, 'NET_15')

    def test_filter_inactive(self):
        create_supplier(self.restaurant, name='Closed Down', is_active=False)
        response = self.client.get(reverse('supplier-list'), {'is_active': 'false'})
        self.assertEqual([row['name'] for row in response.data['results']], ['Closed Down'])

    def test_create_offering_rejects_foreign_ingredient(self):
        other_restaurant, _, _ = create_restaurant('Other Place')
        foreign = create_ingredient(other_restaurant, name='Flour')

        response = self.client.post(reverse('supplieroffering-list'), {
            'supplier': self.supplier.pk,
            'ingredient': foreign.pk,
            'package_unit': 'sack',
            'package_contents_quantity': '25000',
            'package_contents_unit': 'g',
            'package_price': '900.00',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('ingredient', response.data)
        self.assertFalse(SupplierOffering.objects.exists())

    def test_supplier_offerings_action(self):
        create_offering(self.supplier, self.rice)
        response = self.client.get(reverse('supplier-offerings', args=[self.supplier.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['ingredient_name'], 'Jasmine Rice')

    def test_price_comparison_orders_by_package_price(self):
        cheaper = create_supplier(self.restaurant, name='Budget Grains')
        create_offering(self.supplier, self.rice, package_price='120.00')
        create_offering(cheaper, self.rice, package_price='95.00')

        response = self.client.get(reverse('supplieroffering-price-comparison'), {'ingredient': self.rice.pk})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['offerings']), 2)
        self.assertEqual(response.data['cheapest']['supplier_name'], 'Budget Grains')

    def test_price_comparison_requires_ingredient(self):
        response = self.client.get(reverse('supplieroffering-price-comparison'))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_user_without_restaurant_is_forbidden(self):
        loner = User.objects.create_user(email='loner@example.com', password='testpass123')
        self.client.force_authenticate(user=loner)

        response = self.client.get(reverse('supplier-list'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
