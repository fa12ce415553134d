# backend/apps/jobs/views.py

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.core.serializers import LineItemInputSerializer, LineItemUpdateSerializer, line_items_data
from apps.core.viewsets import BaseServiceViewSet
from .filters import JobFilter
from .models import Job
from .serializers import (
    JobAssignSerializer, JobCreateSerializer, JobLineItemSerializer, JobListSerializer,
    JobNoteCreateSerializer, JobNoteSerializer, JobSerializer, JobStatusSerializer,
    JobUpdateSerializer, ScheduleQuerySerializer, TechnicianSerializer,
)
from .services import JobService


class JobViewSet(BaseServiceViewSet):
    """
    ViewSet for Job management. Writes go through JobService so that
    the status workflow, numbering and totals stay consistent.
    """

    queryset = Job.objects.all()
    service_class = JobService
    filterset_class = JobFilter
    search_fields = ['job_number', 'summary']
    ordering_fields = ['created_at', 'scheduled_start', 'priority', 'status', 'job_number', 'total_amount']
    ordering = ['-created_at']

    def get_queryset(self):
        return self.get_service().list_jobs()

    def get_serializer_class(self):
        if self.action == 'list':
            return JobListSerializer
        return JobSerializer

    def _job_response(self, job, status_code=status.HTTP_200_OK):
        job = Job.objects.select_related('customer', 'property', 'assigned_to').prefetch_related(
            'line_items', 'notes'
        ).get(pk=job.pk)
        return Response(JobSerializer(job).data, status=status_code)

    def retrieve(self, request, pk=None):
        return self._job_response(self.get_service().get_job(pk))

    def create(self, request):
        """Create a new job with optional line items"""
        serializer = JobCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        data['line_items'] = line_items_data(data.get('line_items'))
        job = self.get_service().create_job(data)
        return self._job_response(job, status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = JobUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        job = self.get_service().update_job(pk, dict(serializer.validated_data))
        return self._job_response(job)

    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        """Move the job along its status workflow"""
        serializer = JobStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        job = self.get_service().change_status(pk, serializer.validated_data['status'])
        return self._job_response(job)

    @action(detail=True, methods=['post'])
    def assign(self, request, pk=None):
        """Assign or unassign a technician"""
        serializer = JobAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        job = self.get_service().assign_job(pk, serializer.validated_data['technician_id'])
        return self._job_response(job)

    @action(detail=True, methods=['get', 'post'], url_path='line-items')
    def line_items(self, request, pk=None):
        service = self.get_service()
        if request.method == 'GET':
            items = service.get_line_items(pk)
            return Response(JobLineItemSerializer(items, many=True).data)

        serializer = LineItemInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item = service.add_line_item(pk, dict(serializer.validated_data))
        return Response(JobLineItemSerializer(item).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['patch', 'delete'], url_path=r'line-items/(?P<item_id>[^/.]+)')
    def line_item_detail(self, request, pk=None, item_id=None):
        service = self.get_service()
        if request.method == 'DELETE':
            service.delete_line_item(pk, item_id)
            return Response(status=status.HTTP_204_NO_CONTENT)

        serializer = LineItemUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        item = service.update_line_item(pk, item_id, dict(serializer.validated_data))
        return Response(JobLineItemSerializer(item).data)

    @action(detail=True, methods=['post'])
    def notes(self, request, pk=None):
        serializer = JobNoteCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        note = self.get_service().add_note(
            pk,
            serializer.validated_data['content'],
            is_internal=serializer.validated_data['is_internal'],
        )
        return Response(JobNoteSerializer(note).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def schedule(self, request):
        """Jobs on the calendar between ``start`` and ``end``"""
        serializer = ScheduleQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        jobs = self.get_service().get_schedule(
            serializer.validated_data['start'],
            serializer.validated_data['end'],
            technician_id=serializer.validated_data.get('technician_id'),
        )
        return Response(JobListSerializer(jobs, many=True).data)

    @action(detail=False, methods=['get'])
    def dispatchable(self, request):
        """Dispatch board: new and scheduled jobs, most urgent first"""
        jobs = self.get_service().get_dispatchable_jobs()
        return Response(JobListSerializer(jobs, many=True).data)

    @action(detail=False, methods=['get'])
    def technicians(self, request):
        memberships = self.get_service().get_technicians()
        return Response(TechnicianSerializer(memberships, many=True).data)
