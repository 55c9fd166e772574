from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'suppliers', views.SupplierViewSet, basename='supplier')
router.register(r'offerings', views.SupplierOfferingViewSet, basename='supplieroffering')

urlpatterns = [
    path('', include(router.urls)),
]
