# backend/apps/core/viewsets.py

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, permissions, viewsets
from rest_framework.filters import OrderingFilter, SearchFilter

from .pagination import StandardResultsSetPagination
from .permissions import TenantPermission
from .services.base import ServiceContext


class BaseServiceViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         viewsets.GenericViewSet):
    """
    Base ViewSet for aggregates whose writes go through a service class.

    Reads use the tenant-filtered queryset; every write builds the
    service with a context for the requesting member.
    """

    permission_classes = [permissions.IsAuthenticated, TenantPermission]
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    service_class = None

    def get_queryset(self):
        """Filter queryset by tenant"""
        return self.queryset.filter(tenant=self.request.tenant)

    def get_service_context(self):
        if not hasattr(self, '_service_context'):
            self._service_context = ServiceContext.for_user(
                self.request.tenant,
                self.request.user,
                request_id=self.request.META.get('HTTP_X_REQUEST_ID'),
            )
        return self._service_context

    def get_service(self, service_class=None):
        return (service_class or self.service_class)(self.get_service_context())
