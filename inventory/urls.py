from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'ingredients', views.IngredientViewSet, basename='ingredient')
router.register(r'stock-movements', views.StockMovementViewSet, basename='stockmovement')
router.register(r'dishes', views.DishViewSet, basename='dish')
router.register(r'damage-logs', views.DamageSpoilageLogViewSet, basename='damagelog')

urlpatterns = [
    path('', include(router.urls)),
    path('plan-availability/', views.plan_availability, name='plan-availability'),
]
