from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'bills', views.SupplierBillViewSet, basename='supplierbill')
router.register(r'payments', views.SupplierPaymentViewSet, basename='supplierpayment')

urlpatterns = [
    path('', include(router.urls)),
]
