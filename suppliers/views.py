from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import BelongsToRestaurant
from .models import Supplier, SupplierOffering
from .serializers import SupplierSerializer, SupplierOfferingSerializer


class SupplierViewSet(viewsets.ModelViewSet):
    serializer_class = SupplierSerializer
    permission_classes = [BelongsToRestaurant]

    def get_queryset(self):
        queryset = Supplier.objects.filter(restaurant_id=self.request.user.restaurant_id)
        is_active = self.request.query_params.get('is_active')  # None means no filter
        search = self.request.query_params.get('search')

        if is_active is not None:
            queryset = queryset.filter(is_active=is_active.lower() == 'true')
        if search:
            queryset = queryset.filter(name__icontains=search)

        return queryset

    def perform_create(self, serializer):
        serializer.save(restaurant=self.request.user.restaurant)

    @action(detail=True, methods=['get'])
    def offerings(self, request, pk=None):
        """Package offerings of one supplier"""
        supplier = self.get_object()
        offerings = supplier.offerings.select_related('ingredient')
        serializer = SupplierOfferingSerializer(offerings, many=True, context={'request': request})
        return Response(serializer.data)


class SupplierOfferingViewSet(viewsets.ModelViewSet):
    serializer_class = SupplierOfferingSerializer
    permission_classes = [BelongsToRestaurant]

    def get_queryset(self):
        queryset = SupplierOffering.objects.select_related('supplier', 'ingredient').filter(
            supplier__restaurant_id=self.request.user.restaurant_id
        )
        params = self.request.query_params
        if params.get('supplier'):
            queryset = queryset.filter(supplier_id=params['supplier'])
        if params.get('ingredient'):
            queryset = queryset.filter(ingredient_id=params['ingredient'])
        if params.get('is_active') is not None:
            queryset = queryset.filter(is_active=params['is_active'].lower() == 'true')
        return queryset

    @action(detail=False, methods=['get'])
    def price_comparison(self, request):
        """Active offerings for one ingredient, cheapest package first"""
        ingredient_id = request.query_params.get('ingredient')
        if not ingredient_id:
            return Response({'error': 'ingredient query parameter is required'}, status=status.HTTP_400_BAD_REQUEST)

        offerings = self.get_queryset().filter(
            ingredient_id=ingredient_id, is_active=True, supplier__is_active=True,
        ).order_by('package_price', 'id')
        serializer = self.get_serializer(offerings, many=True)
        return Response({
            'ingredient_id': int(ingredient_id),
            'offerings': serializer.data,
            'cheapest': serializer.data[0] if serializer.data else None,
        })
