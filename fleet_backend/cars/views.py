from django.db.models import ProtectedError
from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from fleet_backend.exceptions import ConflictError
from .models import Car
from .serializers import CarSerializer, MaintenanceEntryInputSerializer, MaintenanceRecordSerializer
from .services import MaintenanceLedger, get_car_by_plate


class CarViewSet(viewsets.ModelViewSet):
    serializer_class = CarSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [filters.SearchFilter]
    search_fields = ['brand', 'model', 'plate_number']

    def get_queryset(self):
        queryset = Car.objects.filter(owner=self.request.user).prefetch_related('maintenance_history')
        car_status = self.request.query_params.get('status')
        if car_status:
            queryset = queryset.filter(status=car_status)
        return queryset

    def perform_create(self, serializer):
        # the requesting operator owns the car
        serializer.save(owner=self.request.user)

    def perform_destroy(self, instance):
        try:
            instance.delete()
        except ProtectedError:
            raise ConflictError("Car has rental history and cannot be deleted.")

    @action(detail=False, methods=['get'], url_path='by-plate/(?P<plate_number>[^/]+)')
    def by_plate(self, request, plate_number=None):
        car = get_car_by_plate(plate_number, owner=request.user)
        return Response(self.get_serializer(car).data)

    @action(detail=True, methods=['post'], url_path='maintenance')
    def add_maintenance(self, request, pk=None):
        car = self.get_object()
        payload = MaintenanceEntryInputSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data
        entry = MaintenanceLedger.add_entry(
            car,
            description=data.get('description'),
            amount=data.get('amount'),
            date=data.get('date'),
            km=data.get('km'),
        )
        car.refresh_from_db()
        return Response({
            'entry': MaintenanceRecordSerializer(entry).data,
            'car': self.get_serializer(car).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['patch', 'delete'], url_path='maintenance/(?P<entry_id>[^/.]+)')
    def maintenance_entry(self, request, pk=None, entry_id=None):
        car = self.get_object()
        if request.method == 'DELETE':
            MaintenanceLedger.remove_entry(car, entry_id)
            car.refresh_from_db()
            return Response(self.get_serializer(car).data)

        payload = MaintenanceEntryInputSerializer(data=request.data, partial=True)
        payload.is_valid(raise_exception=True)
        entry = MaintenanceLedger.update_entry(car, entry_id, **payload.validated_data)
        car.refresh_from_db()
        return Response({
            'entry': MaintenanceRecordSerializer(entry).data,
            'car': self.get_serializer(car).data,
        })


class MyCarsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        cars = Car.objects.filter(owner=request.user)
        serializer = CarSerializer(cars, many=True)
        return Response(serializer.data)
