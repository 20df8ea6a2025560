import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone


class Car(models.Model):
    AVAILABLE = 'Available'
    RENTED = 'Rented'
    MAINTENANCE = 'Maintenance'

    PETROL = 'Petrol'
    DIESEL = 'Diesel'
    CNG = 'CNG'
    ELECTRIC = 'Electric'
    HYBRID = 'Hybrid'

    MANUAL = 'Manual'
    AUTOMATIC = 'Automatic'

    STATUS_CHOICES = [
        (AVAILABLE, 'Available'),
        (RENTED, 'Rented'),
        (MAINTENANCE, 'Maintenance'),
    ]

    FUEL_CHOICES = [
        (PETROL, 'Petrol'),
        (DIESEL, 'Diesel'),
        (CNG, 'CNG'),
        (ELECTRIC, 'Electric'),
        (HYBRID, 'Hybrid'),
    ]

    TRANSMISSION_CHOICES = [
        (MANUAL, 'Manual'),
        (AUTOMATIC, 'Automatic'),
    ]

    DOCUMENT_KINDS = ('insurance', 'rc', 'puc', 'driving_licence')

    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='cars')
    brand = models.CharField(max_length=100, db_index=True)
    model = models.CharField(max_length=100, db_index=True)
    plate_number = models.CharField(max_length=20, unique=True)
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2)
    daily_rate = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=AVAILABLE, db_index=True)

    color = models.CharField(max_length=50, blank=True, default='')
    year = models.IntegerField(null=True, blank=True)
    fuel_type = models.CharField(max_length=10, choices=FUEL_CHOICES, blank=True, default='')
    transmission = models.CharField(max_length=10, choices=TRANSMISSION_CHOICES, blank=True, default='')
    seating_capacity = models.IntegerField(default=5)
    insurance_expiry = models.DateField(null=True, blank=True)
    puc_expiry = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True, default='')

    # written only by MaintenanceLedger
    last_serviced_at = models.DateTimeField(null=True, blank=True)
    last_serviced_km = models.PositiveIntegerField(null=True, blank=True)

    # paths owned by the file storage layer
    images = models.JSONField(default=list, blank=True)
    documents = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', '-created_at'], name='car_status_created_idx'),
            models.Index(fields=['brand', 'model'], name='car_brand_model_idx'),
        ]

    def __str__(self):
        return f"{self.brand} {self.model} ({self.plate_number})"

    @staticmethod
    def normalize_plate(value):
        return (value or '').strip().upper()

    def save(self, *args, **kwargs):
        self.plate_number = self.normalize_plate(self.plate_number)
        super().save(*args, **kwargs)


class MaintenanceRecord(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    car = models.ForeignKey(Car, on_delete=models.CASCADE, related_name='maintenance_history')
    description = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    date = models.DateTimeField(default=timezone.now)
    odometer_km = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['date', 'created_at']

    def __str__(self):
        return f"{self.car.plate_number} - {self.description} ({self.date:%Y-%m-%d})"
