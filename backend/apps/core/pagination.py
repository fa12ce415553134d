# apps/core/pagination.py

from django.conf import settings
from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    page_size = settings.FIELD_SERVICE.get('DEFAULT_PAGE_SIZE', 25)
    page_size_query_param = 'page_size'
    max_page_size = settings.FIELD_SERVICE.get('MAX_PAGE_SIZE', 100)
