from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from accounts.permissions import BelongsToRestaurant
from inventory.services import check_plan_availability
from .lifecycle import PurchaseOrderLifecycle, UNSET
from .links import supplier_response_links
from .models import PurchaseOrder
from .receiving import ReceivingProcessor
from .serializers import (
    PurchaseOrderSerializer, PurchaseOrderWriteSerializer, CancelSerializer,
    ReceiveSerializer, ManualReceiveSerializer, ShortageRequestSerializer,
)
from .shortages import ShortageResolver


def _transition_response(result, status_code=status.HTTP_200_OK):
    return Response({
        'purchase_order': PurchaseOrderSerializer(result.order).data,
        'warnings': result.warnings,
    }, status=status_code)


def _receive_response(result):
    bill = result.bill
    return Response({
        'purchase_order': PurchaseOrderSerializer(result.order).data,
        'inventory_updates': [update.as_dict() for update in result.inventory_updates],
        'bill': {'id': bill.pk, 'bill_number': bill.bill_number, 'total_amount': str(bill.total_amount)}
        if bill else None,
        'warnings': result.warnings,
        'partially_succeeded': result.partially_succeeded,
    })


def _delivery_meta(data):
    return {
        key: data[key]
        for key in ('actual_delivery_date', 'delivery_condition', 'received_by', 'notes', 'close_short')
        if key in data
    }


class PurchaseOrderViewSet(mixins.ListModelMixin,
                           mixins.RetrieveModelMixin,
                           viewsets.GenericViewSet):
    serializer_class = PurchaseOrderSerializer
    permission_classes = [BelongsToRestaurant]
    lifecycle = PurchaseOrderLifecycle()

    def get_queryset(self):
        queryset = (PurchaseOrder.objects
                    .filter(restaurant_id=self.request.user.restaurant_id)
                    .select_related('supplier', 'created_by', 'approved_by')
                    .prefetch_related('items__ingredient'))
        params = self.request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('supplier'):
            queryset = queryset.filter(supplier_id=params['supplier'])
        if params.get('is_manual_receive') is not None:
            queryset = queryset.filter(is_manual_receive=params['is_manual_receive'].lower() == 'true')
        return queryset

    def create(self, request):
        serializer = PurchaseOrderWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        if not data.get('items'):
            return Response({'items': ['At least one item is required']}, status=status.HTTP_400_BAD_REQUEST)

        purchase_order = self.lifecycle.create_purchase_order(
            request.user.restaurant,
            data.get('supplier_id'),
            data['items'],
            user=request.user,
            expected_delivery_date=data.get('expected_delivery_date'),
            notes=data.get('notes', ''),
            delivery_instructions=data.get('delivery_instructions', ''),
            discount_amount=data.get('discount_amount'),
            tax_rate=data.get('tax_rate'),
        )
        return Response(PurchaseOrderSerializer(purchase_order).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        purchase_order = self.get_object()
        serializer = PurchaseOrderWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        purchase_order = self.lifecycle.update_purchase_order(
            purchase_order.pk,
            user=request.user,
            items=data.get('items'),
            supplier_id=data['supplier_id'] if 'supplier_id' in data else UNSET,
            expected_delivery_date=data['expected_delivery_date'] if 'expected_delivery_date' in data else UNSET,
            notes=data.get('notes'),
            delivery_instructions=data.get('delivery_instructions'),
            discount_amount=data.get('discount_amount'),
            tax_rate=data.get('tax_rate'),
        )
        return Response(PurchaseOrderSerializer(purchase_order).data)

    def update(self, request, pk=None):
        return self.partial_update(request, pk)

    def destroy(self, request, pk=None):
        purchase_order = self.get_object()
        self.lifecycle.delete(purchase_order.pk, user=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def submit(self, request, pk=None):
        purchase_order = self.get_object()
        return _transition_response(self.lifecycle.submit_for_approval(purchase_order.pk, user=request.user))

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        """Approve a pending order and email it to the supplier"""
        purchase_order = self.get_object()
        return _transition_response(self.lifecycle.approve_and_send(purchase_order.pk, user=request.user))

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        purchase_order = self.get_object()
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.lifecycle.cancel(
            purchase_order.pk, user=request.user, reason=serializer.validated_data.get('reason', ''),
        )
        return _transition_response(result)

    @action(detail=True, methods=['post'])
    def receive(self, request, pk=None):
        purchase_order = self.get_object()
        serializer = ReceiveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = ReceivingProcessor().receive(
            purchase_order.pk, data['items'], _delivery_meta(data), user=request.user,
        )
        return _receive_response(result)

    @action(detail=True, methods=['get'])
    def links(self, request, pk=None):
        """Signed confirm/reject links, for sending the order by other channels"""
        purchase_order = self.get_object()
        return Response({
            'po_number': purchase_order.po_number,
            'links': supplier_response_links(purchase_order),
        })


@api_view(['POST'])
@permission_classes([BelongsToRestaurant])
def manual_receive(request):
    """Receive a delivery that has no purchase order behind it"""
    serializer = ManualReceiveSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = ReceivingProcessor().manual_receive(
        request.user.restaurant,
        {'name': data['supplier_name'], 'contact': data.get('supplier_contact', '')},
        data['items'],
        _delivery_meta(data),
        user=request.user,
    )
    response = _receive_response(result)
    response.status_code = status.HTTP_201_CREATED
    return response


@api_view(['POST'])
@permission_classes([BelongsToRestaurant])
def create_from_shortages(request):
    """Draft purchase orders for shortages, given directly or derived from a preparation plan"""
    serializer = ShortageRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    if data.get('shortages'):
        shortages = [(line['ingredient_id'], line['shortage']) for line in data['shortages']]
    else:
        plan = [(line['dish_id'], line['quantity']) for line in data['plan']]
        shortages = check_plan_availability(plan, request.user.restaurant).shortages

    result = ShortageResolver().create_purchase_orders_from_shortages(
        shortages, request.user.restaurant, user=request.user,
    )
    return Response({
        'purchase_orders': PurchaseOrderSerializer(result.orders, many=True).data,
        'skipped': result.skipped,
        'errors': result.errors,
    }, status=status.HTTP_201_CREATED if result.orders else status.HTTP_200_OK)


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def supplier_response(request, pk):
    """Supplier confirms or rejects an order from the emailed link"""
    action_name = request.query_params.get('action') or request.data.get('action')
    token = request.query_params.get('token') or request.data.get('token')

    result = PurchaseOrderLifecycle().supplier_respond(pk, token, action_name)
    purchase_order = result.order
    return Response({
        'po_number': purchase_order.po_number,
        'status': purchase_order.status,
        'supplier_response': purchase_order.supplier_response,
        'responded_at': purchase_order.supplier_responded_at,
        'message': f"Thank you, purchase order {purchase_order.po_number} has been "
                   f"{'confirmed' if purchase_order.status == 'confirmed' else 'rejected'}.",
    })
