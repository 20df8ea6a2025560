from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .filters import RentalFilter, RentalPagination
from .models import Rental
from .serializers import CompleteRentalSerializer, RentalDetailSerializer, RentalSerializer, rental_payload
from .services import RentalLifecycle


class RentalViewSet(viewsets.ModelViewSet):
    """
    Rentals of the requesting operator. Writes go through RentalLifecycle so
    the rent, the settlement and the car status always move together:
    - create: book an available car
    - update / partial_update: edit times, customer, adjustments, status
    - complete: return the car
    - settle: mark the money as reconciled
    - destroy: remove the rental (frees the car if it was active)
    - all: every rental of the operator, unpaginated
    """
    permission_classes = [IsAuthenticated]
    pagination_class = RentalPagination
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = RentalFilter
    search_fields = ['car__plate_number', 'car__brand', 'car__model', 'customer_name', 'customer_phone']
    ordering_fields = ['created_at', 'start_time', 'end_time', 'final_amount_collected', 'total_rent']
    ordering = ['-created_at']

    def get_queryset(self):
        return Rental.objects.filter(owner=self.request.user).select_related('car')

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return RentalDetailSerializer
        return RentalSerializer

    def create(self, request, *args, **kwargs):
        rental = RentalLifecycle.create(request.user, rental_payload(request.data))
        return Response(RentalDetailSerializer(rental).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        rental = RentalLifecycle.update(self.get_object(), rental_payload(request.data))
        return Response(RentalDetailSerializer(rental).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        RentalLifecycle.delete(self.get_object())
        return Response({'status': 'Rental removed.'})

    @action(detail=False, methods=['get'], url_path='all', pagination_class=None)
    def all_rentals(self, request):
        # unpaginated, for dashboard totals
        queryset = self.get_queryset().order_by('-created_at')
        return Response(RentalSerializer(queryset, many=True).data)

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        payload = CompleteRentalSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        rental = RentalLifecycle.complete(self.get_object(), payload.validated_data.get('end_time'))
        return Response(RentalDetailSerializer(rental).data)

    @action(detail=True, methods=['post'])
    def settle(self, request, pk=None):
        settled = request.data.get('is_settled', True)
        rental = RentalLifecycle.settle(self.get_object(), settled)
        return Response(RentalDetailSerializer(rental).data)
