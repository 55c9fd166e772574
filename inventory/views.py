from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.response import Response

from accounts.permissions import BelongsToRestaurant
from .models import Ingredient, StockMovement, Dish, DamageSpoilageLog
from .serializers import (
    IngredientSerializer, StockMovementSerializer, DishSerializer, DishSaleSerializer,
    PlanAvailabilitySerializer, DamageSpoilageLogSerializer, DamageReportSerializer,
)
from .services import (
    check_stock_availability, check_plan_availability, record_dish_sale,
    log_damage_spoilage, low_stock_ingredients, ingredient_cost,
)


def _availability_data(availability):
    return {
        'available': availability.available,
        'requirements': availability.requirements,
        'shortages': availability.shortages,
    }


class IngredientViewSet(mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        mixins.CreateModelMixin,
                        mixins.UpdateModelMixin,
                        viewsets.GenericViewSet):
    """Ingredient metadata; stock only moves through receiving, sales and write-offs"""
    serializer_class = IngredientSerializer
    permission_classes = [BelongsToRestaurant]

    def get_queryset(self):
        queryset = Ingredient.objects.filter(restaurant_id=self.request.user.restaurant_id)
        search = self.request.query_params.get('search')
        if search:
            queryset = queryset.filter(name__icontains=search)
        return queryset

    def perform_create(self, serializer):
        serializer.save(restaurant=self.request.user.restaurant)

    @action(detail=False, methods=['get'])
    def low_stock(self, request):
        serializer = self.get_serializer(low_stock_ingredients(request.user.restaurant), many=True)
        return Response({'count': len(serializer.data), 'ingredients': serializer.data})

    @action(detail=True, methods=['get'])
    def movements(self, request, pk=None):
        ingredient = self.get_object()
        page = self.paginate_queryset(ingredient.movements.select_related('user'))
        serializer = StockMovementSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=True, methods=['get'])
    def cost(self, request, pk=None):
        """Cheapest current offering cost next to the running average"""
        ingredient = self.get_object()
        return Response({
            'ingredient_id': ingredient.pk,
            'base_unit': ingredient.base_unit,
            'cost_per_unit': str(ingredient.cost_per_unit),
            'best_offering_cost': str(ingredient_cost(ingredient)),
        })


class StockMovementViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = StockMovementSerializer
    permission_classes = [BelongsToRestaurant]

    def get_queryset(self):
        queryset = StockMovement.objects.select_related('ingredient', 'user').filter(
            ingredient__restaurant_id=self.request.user.restaurant_id
        )
        params = self.request.query_params
        if params.get('ingredient'):
            queryset = queryset.filter(ingredient_id=params['ingredient'])
        if params.get('movement_type'):
            queryset = queryset.filter(movement_type=params['movement_type'])
        if params.get('reference'):
            queryset = queryset.filter(reference_number=params['reference'])
        if params.get('flagged_negative') is not None:
            queryset = queryset.filter(flagged_negative=params['flagged_negative'].lower() == 'true')
        return queryset


class DishViewSet(viewsets.ModelViewSet):
    serializer_class = DishSerializer
    permission_classes = [BelongsToRestaurant]

    def get_queryset(self):
        return Dish.objects.filter(
            restaurant_id=self.request.user.restaurant_id
        ).prefetch_related('dish_ingredients__ingredient')

    def perform_create(self, serializer):
        serializer.save(restaurant=self.request.user.restaurant)

    @action(detail=True, methods=['get'])
    def availability(self, request, pk=None):
        dish = self.get_object()
        quantity = request.query_params.get('quantity', 1)
        availability = check_stock_availability(dish.pk, quantity, request.user.restaurant)
        return Response({'dish_id': dish.pk, 'quantity': str(quantity), **_availability_data(availability)})

    @action(detail=True, methods=['post'])
    def sale(self, request, pk=None):
        """Deduct the recipe for sold portions; all ingredients or none"""
        dish = self.get_object()
        serializer = DishSaleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = record_dish_sale(
            dish.pk, serializer.validated_data['quantity'],
            user=request.user,
            reference=serializer.validated_data.get('reference', ''),
            restaurant=request.user.restaurant,
        )
        return Response({
            'dish_id': dish.pk,
            'quantity': str(result.quantity),
            'inventory_updates': [update.as_dict() for update in result.updates],
        }, status=status.HTTP_201_CREATED)


class DamageSpoilageLogViewSet(mixins.ListModelMixin,
                               mixins.RetrieveModelMixin,
                               viewsets.GenericViewSet):
    serializer_class = DamageSpoilageLogSerializer
    permission_classes = [BelongsToRestaurant]

    def get_queryset(self):
        queryset = DamageSpoilageLog.objects.select_related('ingredient', 'reported_by').filter(
            restaurant_id=self.request.user.restaurant_id
        )
        params = self.request.query_params
        if params.get('log_type'):
            queryset = queryset.filter(log_type=params['log_type'])
        if params.get('ingredient'):
            queryset = queryset.filter(ingredient_id=params['ingredient'])
        if params.get('date_from'):
            queryset = queryset.filter(incident_date__gte=params['date_from'])
        if params.get('date_to'):
            queryset = queryset.filter(incident_date__lte=params['date_to'])
        return queryset

    def create(self, request):
        serializer = DamageReportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = log_damage_spoilage(
            request.user.restaurant,
            data['items'],
            user=request.user,
            log_type=data['log_type'],
            incident_date=data.get('incident_date'),
            reason=data.get('reason', ''),
            notes=data.get('notes', ''),
        )
        failed = [{'index': row['index'], 'error': row['error']} for row in result.failed]
        return Response({
            'success_count': result.success_count,
            'logs': DamageSpoilageLogSerializer(result.logs, many=True).data,
            'failed': failed,
        }, status=status.HTTP_201_CREATED if result.logs else status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([BelongsToRestaurant])
def plan_availability(request):
    """Check stock for a preparation plan of several dishes"""
    serializer = PlanAvailabilitySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    plan = [(line['dish_id'], line['quantity']) for line in serializer.validated_data['plan']]
    return Response(_availability_data(check_plan_availability(plan, request.user.restaurant)))
