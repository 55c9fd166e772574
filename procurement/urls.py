from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'purchase-orders', views.PurchaseOrderViewSet, basename='purchaseorder')

urlpatterns = [
    path('purchase-orders/manual-receive/', views.manual_receive, name='manual_receive'),
    path('purchase-orders/from-shortages/', views.create_from_shortages, name='create_from_shortages'),
    path('', include(router.urls)),

    # Signed link emailed to suppliers; no login
    path('supplier-response/<int:pk>/', views.supplier_response, name='supplier_response'),
]
