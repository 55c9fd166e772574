"""
Object builders shared by the unit and integration tests
"""

from decimal import Decimal

from django.contrib.auth import get_user_model

from accounts.models import Restaurant
from inventory.models import Ingredient
from procurement.models import PurchaseOrder, PurchaseOrderItem
from suppliers.models import Supplier, SupplierOffering

User = get_user_model()


def create_restaurant(name='Casa Luna'):
    slug = name.lower().replace(' ', '')
    restaurant = Restaurant.objects.create(name=name, email=f'hello@{slug}.ph')
    owner = User.objects.create_user(
        email=f'owner@{slug}.ph', password='testpass123',
        first_name='Olivia', last_name='Owner', user_type='owner', restaurant=restaurant,
    )
    purchaser = User.objects.create_user(
        email=f'purchasing@{slug}.ph', password='testpass123',
        first_name='Paolo', last_name='Purchaser', user_type='purchaser', restaurant=restaurant,
    )
    return restaurant, owner, purchaser


def create_ingredient(restaurant, name='Jasmine Rice', base_unit='g', **fields):
    return Ingredient.objects.create(restaurant=restaurant, name=name, base_unit=base_unit, **fields)


def create_supplier(restaurant, name='Metro Produce', **fields):
    fields.setdefault('email', 'orders@metroproduce.ph')
    fields.setdefault('contact_person', 'Mara Santos')
    return Supplier.objects.create(restaurant=restaurant, name=name, **fields)


def create_offering(supplier, ingredient, package_price='100.00', contents='1000', **fields):
    fields.setdefault('package_unit', 'bag')
    fields.setdefault('package_contents_unit', ingredient.base_unit)
    return SupplierOffering.objects.create(
        supplier=supplier,
        ingredient=ingredient,
        package_price=Decimal(package_price),
        package_contents_quantity=Decimal(contents),
        **fields
    )


def create_order(restaurant, supplier, lines, status='confirmed', user=None):
    """Purchase order in any state; ``lines`` is [(ingredient, ordered_packages, package_price)]"""
    purchase_order = PurchaseOrder.objects.create(
        restaurant=restaurant, supplier=supplier, status=status, created_by=user,
    )
    for ingredient, quantity, price in lines:
        PurchaseOrderItem.objects.create(
            purchase_order=purchase_order,
            ingredient=ingredient,
            ordered_quantity=Decimal(str(quantity)),
            unit_price=Decimal(str(price)),
            unit_of_measure='bag',
        )
    return purchase_order
