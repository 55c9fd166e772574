from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import BelongsToRestaurant, IsRestaurantManager
from backoffice_api.exceptions import NotFoundError
from procurement.models import PurchaseOrder
from .models import SupplierBill, SupplierPayment
from .serializers import (
    SupplierBillSerializer, SupplierBillDetailSerializer, SupplierPaymentSerializer,
    GenerateBillSerializer, BulkGenerateBillSerializer, RecordPaymentSerializer,
    UpdatePaymentSerializer, CancelPaymentSerializer,
)
from .services import BillingEngine, PaymentLedger


def _payment_response(result, status_code=status.HTTP_200_OK):
    return Response({
        'payment': SupplierPaymentSerializer(result.payment).data,
        'bill': SupplierBillSerializer(result.bill).data,
    }, status=status_code)


class SupplierBillViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [BelongsToRestaurant]

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return SupplierBillDetailSerializer
        return SupplierBillSerializer

    def get_queryset(self):
        queryset = SupplierBill.objects.filter(
            restaurant_id=self.request.user.restaurant_id
        ).select_related('supplier', 'purchase_order').prefetch_related('payments')
        params = self.request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('supplier'):
            queryset = queryset.filter(supplier_id=params['supplier'])
        if params.get('due_before'):
            queryset = queryset.filter(due_date__lte=params['due_before'])
        return queryset

    def _own_purchase_order_ids(self, ids):
        owned = set(PurchaseOrder.objects.filter(
            restaurant_id=self.request.user.restaurant_id, pk__in=ids,
        ).values_list('pk', flat=True))
        return [pk for pk in ids if pk in owned], [pk for pk in ids if pk not in owned]

    @action(detail=False, methods=['post'])
    def generate(self, request):
        """Bill a delivered purchase order"""
        serializer = GenerateBillSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        purchase_order_id = data.pop('purchase_order_id')

        owned, _ = self._own_purchase_order_ids([purchase_order_id])
        if not owned:
            raise NotFoundError(f"Purchase order {purchase_order_id} not found",
                                {'purchase_order_id': purchase_order_id})

        bill = BillingEngine().generate_bill_from_purchase_order(purchase_order_id, user=request.user, **data)
        return Response(SupplierBillDetailSerializer(bill).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='bulk-generate')
    def bulk_generate(self, request):
        serializer = BulkGenerateBillSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        owned, foreign = self._own_purchase_order_ids(data['purchase_order_ids'])

        options = {'tax_rate': data['tax_rate']} if 'tax_rate' in data else {}
        result = BillingEngine().bulk_generate_bills(owned, user=request.user, **options)
        results = result.results + [
            {'purchase_order_id': pk, 'success': False, 'error': f"Purchase order {pk} not found"}
            for pk in foreign
        ]
        return Response({
            'processed_count': result.processed_count + len(foreign),
            'success_count': result.success_count,
            'error_count': result.error_count + len(foreign),
            'results': results,
        })

    @action(detail=False, methods=['post'], url_path='mark-overdue', permission_classes=[IsRestaurantManager])
    def mark_overdue(self, request):
        result = PaymentLedger().mark_overdue(restaurant=request.user.restaurant)
        return Response({
            'marked_count': result.marked_count,
            'total_overdue': str(result.total_overdue),
            'bill_numbers': result.bill_numbers,
        })

    @action(detail=True, methods=['post'])
    def payments(self, request, pk=None):
        """Record a payment against this bill"""
        bill = self.get_object()
        serializer = RecordPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = PaymentLedger().record_payment(
            bill.pk, data['amount'], data['payment_method'], data.get('payment_date'),
            user=request.user,
            transaction_reference=data.get('transaction_reference', ''),
            notes=data.get('notes', ''),
        )
        return _payment_response(result, status.HTTP_201_CREATED)


class SupplierPaymentViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = SupplierPaymentSerializer
    permission_classes = [BelongsToRestaurant]

    def get_queryset(self):
        queryset = SupplierPayment.objects.filter(
            bill__restaurant_id=self.request.user.restaurant_id
        ).select_related('bill', 'recorded_by', 'cancelled_by')
        params = self.request.query_params
        if params.get('bill'):
            queryset = queryset.filter(bill_id=params['bill'])
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('payment_method'):
            queryset = queryset.filter(payment_method=params['payment_method'])
        return queryset

    def partial_update(self, request, pk=None):
        payment = self.get_object()
        serializer = UpdatePaymentSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = PaymentLedger().update_payment(payment.pk, user=request.user, **serializer.validated_data)
        return _payment_response(result)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        payment = self.get_object()
        serializer = CancelPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = PaymentLedger().cancel_payment(
            payment.pk, user=request.user, reason=serializer.validated_data.get('reason', ''),
        )
        return _payment_response(result)
