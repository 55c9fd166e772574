from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response


@api_view(['GET'])
@permission_classes([AllowAny])
def api_overview(request):
    """
    Endpoint map of the restaurant back-office API
    """

    api_endpoints = {
        "base_url": request.build_absolute_uri('/')[:-1],
        "version": "1.0",
        "description": "Restaurant back-office - procurement, stock and supplier billing API",

        "authentication": {
            "register": "/api/auth/register/",
            "login": "/api/auth/login/",
            "token_refresh": "/api/auth/token/refresh/",
            "user_profile": "/api/auth/profile/",
            "staff": "/api/auth/staff/",
        },

        "suppliers": {
            "list_suppliers": "/api/suppliers/suppliers/",
            "supplier_detail": "/api/suppliers/suppliers/{id}/",
            "supplier_offerings": "/api/suppliers/suppliers/{id}/offerings/",
            "offerings": "/api/suppliers/offerings/",
            "price_comparison": "/api/suppliers/offerings/price_comparison/?ingredient={id}",
        },

        "inventory": {
            "ingredients": "/api/inventory/ingredients/",
            "ingredient_movements": "/api/inventory/ingredients/{id}/movements/",
            "ingredient_cost": "/api/inventory/ingredients/{id}/cost/",
            "low_stock": "/api/inventory/ingredients/low_stock/",
            "stock_movements": "/api/inventory/stock-movements/",
            "dishes": "/api/inventory/dishes/",
            "dish_availability": "/api/inventory/dishes/{id}/availability/?quantity={n}",
            "dish_sale": "/api/inventory/dishes/{id}/sale/ [POST]",
            "damage_logs": "/api/inventory/damage-logs/",
            "plan_availability": "/api/inventory/plan-availability/ [POST]",
        },

        "procurement": {
            "purchase_orders": "/api/procurement/purchase-orders/",
            "purchase_order_detail": "/api/procurement/purchase-orders/{id}/",
            "submit": "/api/procurement/purchase-orders/{id}/submit/ [POST]",
            "approve": "/api/procurement/purchase-orders/{id}/approve/ [POST]",
            "cancel": "/api/procurement/purchase-orders/{id}/cancel/ [POST]",
            "receive": "/api/procurement/purchase-orders/{id}/receive/ [POST]",
            "supplier_links": "/api/procurement/purchase-orders/{id}/links/",
            "manual_receive": "/api/procurement/purchase-orders/manual-receive/ [POST]",
            "from_shortages": "/api/procurement/purchase-orders/from-shortages/ [POST]",
            "supplier_response": "/api/procurement/supplier-response/{id}/?action={confirm|reject}&token={token}",
        },

        "billing": {
            "bills": "/api/billing/bills/",
            "bill_detail": "/api/billing/bills/{id}/",
            "generate": "/api/billing/bills/generate/ [POST]",
            "bulk_generate": "/api/billing/bills/bulk-generate/ [POST]",
            "mark_overdue": "/api/billing/bills/mark-overdue/ [POST]",
            "record_payment": "/api/billing/bills/{id}/payments/ [POST]",
            "payments": "/api/billing/payments/",
            "update_payment": "/api/billing/payments/{id}/ [PATCH]",
            "cancel_payment": "/api/billing/payments/{id}/cancel/ [POST]",
        },

        "documentation": {
            "schema": "/api/schema/",
            "swagger": "/api/docs/",
            "redoc": "/api/redoc/",
        },

        "filtering_parameters": {
            "common": "?is_active=true&search=keyword",
            "pagination": "?page=1",
            "purchase_orders": "?status=sent&supplier={id}",
            "bills": "?status=overdue&due_before=2025-01-31",
        },
    }

    return Response(api_endpoints)
