from rest_framework import serializers
from .models import Car, MaintenanceRecord


class MaintenanceRecordSerializer(serializers.ModelSerializer):
    km = serializers.IntegerField(source='odometer_km', read_only=True)

    class Meta:
        model = MaintenanceRecord
        fields = ['id', 'description', 'amount', 'date', 'km', 'created_at']
        read_only_fields = fields


class MaintenanceEntryInputSerializer(serializers.Serializer):
    """Shape check only; MaintenanceLedger does the real validation."""
    description = serializers.CharField(required=False, allow_blank=True)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    date = serializers.DateTimeField(required=False, allow_null=True)
    km = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class CarSerializer(serializers.ModelSerializer):
    maintenance_history = MaintenanceRecordSerializer(many=True, read_only=True)

    class Meta:
        model = Car
        fields = [
            'id', 'owner', 'brand', 'model', 'plate_number', 'hourly_rate', 'daily_rate', 'status',
            'color', 'year', 'fuel_type', 'transmission', 'seating_capacity',
            'insurance_expiry', 'puc_expiry', 'notes',
            'last_serviced_at', 'last_serviced_km', 'maintenance_history',
            'images', 'documents', 'created_at', 'updated_at',
        ]
        read_only_fields = ['owner', 'last_serviced_at', 'last_serviced_km', 'created_at', 'updated_at']

    def validate_plate_number(self, value):
        plate = Car.normalize_plate(value)
        if not plate:
            raise serializers.ValidationError("Plate number cannot be empty.")
        clash = Car.objects.filter(plate_number=plate)
        if self.instance is not None:
            clash = clash.exclude(pk=self.instance.pk)
        if clash.exists():
            raise serializers.ValidationError("Car with this plate number already exists.")
        return plate

    def validate_hourly_rate(self, value):
        if value < 0:
            raise serializers.ValidationError("Hourly rate cannot be negative.")
        return value

    def validate_daily_rate(self, value):
        if value < 0:
            raise serializers.ValidationError("Daily rate cannot be negative.")
        return value

    def validate_seating_capacity(self, value):
        if value <= 0:
            raise serializers.ValidationError("Seating capacity must be greater than 0.")
        return value

    def validate_images(self, value):
        if not isinstance(value, list) or not all(isinstance(path, str) for path in value):
            raise serializers.ValidationError("Images must be a list of file paths.")
        return value

    def validate_documents(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Documents must be an object of file paths.")
        unknown = set(value) - set(Car.DOCUMENT_KINDS)
        if unknown:
            raise serializers.ValidationError(f"Unknown document kinds: {', '.join(sorted(unknown))}.")
        return value

    def validate_status(self, value):
        # a car with an active rental stays Rented until the rental is returned or deleted
        if self.instance is not None and value != Car.RENTED:
            if self.instance.rentals.filter(status='Active').exists():
                raise serializers.ValidationError("Car has an active rental; return it first.")
        return value
