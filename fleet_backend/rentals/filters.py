import django_filters
from rest_framework.pagination import PageNumberPagination

from .models import Rental


class RentalFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=Rental.STATUS_CHOICES)
    is_settled = django_filters.BooleanFilter()
    car = django_filters.NumberFilter(field_name='car_id')
    started_after = django_filters.IsoDateTimeFilter(field_name='start_time', lookup_expr='gte')
    started_before = django_filters.IsoDateTimeFilter(field_name='start_time', lookup_expr='lte')

    class Meta:
        model = Rental
        fields = ['status', 'is_settled', 'car']


class RentalPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = 'limit'
    max_page_size = 100
