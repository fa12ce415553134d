# backend/apps/finance/views.py

"""
Estimate and Invoice Management Views
"""

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.core.serializers import LineItemInputSerializer, LineItemUpdateSerializer, line_items_data
from apps.core.viewsets import BaseServiceViewSet
from .filters import EstimateFilter, InvoiceFilter
from .models import Estimate, Invoice
from .serializers import (
    EstimateApproveSerializer, EstimateCreateSerializer, EstimateListSerializer,
    EstimateOptionInputSerializer, EstimateOptionItemSerializer, EstimateOptionSerializer,
    EstimateOptionUpdateSerializer, EstimateSerializer, EstimateUpdateSerializer,
    InvoiceCreateSerializer, InvoiceFromJobSerializer, InvoiceFromSourceSerializer,
    InvoiceLineItemSerializer, InvoiceListSerializer, InvoiceSerializer, InvoiceUpdateSerializer,
    PaymentCreateSerializer, PaymentSerializer, option_data,
)
from .services import EstimateService, InvoiceService, PaymentService


class EstimateViewSet(BaseServiceViewSet):
    """Estimate management; every write goes through EstimateService"""

    queryset = Estimate.objects.all()
    service_class = EstimateService
    filterset_class = EstimateFilter
    search_fields = ['estimate_number', 'summary']
    ordering_fields = ['created_at', 'estimate_number', 'status', 'total_amount', 'valid_until']
    ordering = ['-created_at']

    def get_queryset(self):
        return self.get_service().list_estimates()

    def get_serializer_class(self):
        if self.action == 'list':
            return EstimateListSerializer
        return EstimateSerializer

    def _estimate_response(self, estimate, status_code=status.HTTP_200_OK):
        estimate = Estimate.objects.select_related('customer').prefetch_related(
            'options__items'
        ).get(pk=estimate.pk)
        return Response(EstimateSerializer(estimate).data, status=status_code)

    def retrieve(self, request, pk=None):
        return self._estimate_response(self.get_service().get_estimate(pk))

    def create(self, request):
        """Create a draft estimate with its options"""
        serializer = EstimateCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        data['options'] = [option_data(option) for option in data.get('options') or []]
        estimate = self.get_service().create_estimate(data)
        return self._estimate_response(estimate, status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = EstimateUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        estimate = self.get_service().update_estimate(pk, dict(serializer.validated_data))
        return self._estimate_response(estimate)

    @action(detail=True, methods=['post'])
    def send(self, request, pk=None):
        return self._estimate_response(self.get_service().send_estimate(pk))

    @action(detail=True, methods=['post'])
    def viewed(self, request, pk=None):
        """Customer opened the estimate"""
        return self._estimate_response(self.get_service().mark_viewed(pk))

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        """Approve one option; the choice cannot be changed afterwards"""
        serializer = EstimateApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        estimate = self.get_service().approve_estimate(pk, serializer.validated_data['option_id'])
        return self._estimate_response(estimate)

    @action(detail=True, methods=['post'])
    def decline(self, request, pk=None):
        return self._estimate_response(self.get_service().decline_estimate(pk))

    @action(detail=True, methods=['post'], url_path='options')
    def add_option(self, request, pk=None):
        serializer = EstimateOptionInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        option = self.get_service().add_option(pk, option_data(serializer.validated_data))
        return Response(EstimateOptionSerializer(option).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['patch', 'delete'], url_path=r'options/(?P<option_id>[^/.]+)')
    def option_detail(self, request, pk=None, option_id=None):
        service = self.get_service()
        if request.method == 'DELETE':
            service.delete_option(pk, option_id)
            return Response(status=status.HTTP_204_NO_CONTENT)

        serializer = EstimateOptionUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        option = service.update_option(pk, option_id, dict(serializer.validated_data))
        return Response(EstimateOptionSerializer(option).data)

    @action(detail=True, methods=['post'], url_path=r'options/(?P<option_id>[^/.]+)/items')
    def option_items(self, request, pk=None, option_id=None):
        serializer = LineItemInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        item = self.get_service().add_option_item(pk, option_id, dict(serializer.validated_data))
        return Response(EstimateOptionItemSerializer(item).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['patch', 'delete'],
            url_path=r'options/(?P<option_id>[^/.]+)/items/(?P<item_id>[^/.]+)')
    def option_item_detail(self, request, pk=None, option_id=None, item_id=None):
        service = self.get_service()
        if request.method == 'DELETE':
            service.delete_option_item(pk, option_id, item_id)
            return Response(status=status.HTTP_204_NO_CONTENT)

        serializer = LineItemUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        item = service.update_option_item(pk, option_id, item_id, dict(serializer.validated_data))
        return Response(EstimateOptionItemSerializer(item).data)

    @action(detail=True, methods=['post'], url_path='convert-to-invoice')
    def convert_to_invoice(self, request, pk=None):
        """Invoice the approved option"""
        serializer = InvoiceFromSourceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        invoice = self.get_service(InvoiceService).create_from_estimate(pk, **serializer.validated_data)
        return Response(InvoiceSerializer(_invoice_detail(invoice)).data, status=status.HTTP_201_CREATED)


class InvoiceViewSet(BaseServiceViewSet):
    """Invoice management; ledger figures are only written by the services"""

    queryset = Invoice.objects.all()
    service_class = InvoiceService
    filterset_class = InvoiceFilter
    search_fields = ['invoice_number', 'notes']
    ordering_fields = ['created_at', 'invoice_number', 'status', 'due_date', 'total', 'balance_due']
    ordering = ['-created_at']

    def get_queryset(self):
        return self.get_service().list_invoices()

    def get_serializer_class(self):
        if self.action == 'list':
            return InvoiceListSerializer
        return InvoiceSerializer

    def _invoice_response(self, invoice, status_code=status.HTTP_200_OK):
        return Response(InvoiceSerializer(_invoice_detail(invoice)).data, status=status_code)

    def retrieve(self, request, pk=None):
        return self._invoice_response(self.get_service().get_invoice(pk))

    def create(self, request):
        """Create a draft invoice with at least one line item"""
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        data['line_items'] = line_items_data(data.get('line_items'))
        invoice = self.get_service().create_invoice(data)
        return self._invoice_response(invoice, status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = InvoiceUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        invoice = self.get_service().update_invoice(pk, dict(serializer.validated_data))
        return self._invoice_response(invoice)

    @action(detail=True, methods=['post'])
    def send(self, request, pk=None):
        return self._invoice_response(self.get_service().send_invoice(pk))

    @action(detail=True, methods=['post'])
    def viewed(self, request, pk=None):
        return self._invoice_response(self.get_service().mark_viewed(pk))

    @action(detail=True, methods=['post'])
    def void(self, request, pk=None):
        return self._invoice_response(self.get_service().void_invoice(pk))

    @action(detail=True, methods=['get', 'post'], url_path='line-items')
    def line_items(self, request, pk=None):
        service = self.get_service()
        if request.method == 'GET':
            items = service.get_line_items(pk)
            return Response(InvoiceLineItemSerializer(items, many=True).data)

        serializer = LineItemInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item = service.add_line_item(pk, dict(serializer.validated_data))
        return Response(InvoiceLineItemSerializer(item).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['patch', 'delete'], url_path=r'line-items/(?P<item_id>[^/.]+)')
    def line_item_detail(self, request, pk=None, item_id=None):
        service = self.get_service()
        if request.method == 'DELETE':
            service.delete_line_item(pk, item_id)
            return Response(status=status.HTTP_204_NO_CONTENT)

        serializer = LineItemUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        item = service.update_line_item(pk, item_id, dict(serializer.validated_data))
        return Response(InvoiceLineItemSerializer(item).data)

    @action(detail=True, methods=['get', 'post'])
    def payments(self, request, pk=None):
        """Payments recorded against the invoice"""
        service = self.get_service(PaymentService)
        if request.method == 'GET':
            return Response(PaymentSerializer(service.list_payments(pk), many=True).data)

        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = service.record_payment(pk, **serializer.validated_data)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='from-job')
    def from_job(self, request):
        """Invoice a completed job from its line items"""
        serializer = InvoiceFromJobSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        invoice = self.get_service().generate_from_job(data.pop('job_id'), **data)
        return self._invoice_response(invoice, status.HTTP_201_CREATED)


def _invoice_detail(invoice):
    return Invoice.objects.select_related('customer').prefetch_related(
        'line_items', 'payments'
    ).get(pk=invoice.pk)
