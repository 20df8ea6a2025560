import math

from rest_framework import serializers
from cars.models import Car
from .models import Rental

# the booking form posts camelCase keys; services work in snake_case
INPUT_ALIASES = {
    'carId': 'car_id',
    'car': 'car_id',
    'startTime': 'start_time',
    'endTime': 'end_time',
    'customerName': 'customer_name',
    'customerPhone': 'customer_phone',
    'customerOccupation': 'customer_occupation',
    'deductionAmount': 'deduction_amount',
    'deductionReason': 'deduction_reason',
    'ghataAmount': 'ghata_amount',
    'ghataReason': 'ghata_reason',
    'manualTotalRent': 'manual_total_rent',
    'isSettled': 'is_settled',
}

INPUT_FIELDS = {
    'car_id', 'start_time', 'end_time', 'customer_name', 'customer_phone', 'customer_occupation',
    'deduction_amount', 'deduction_reason', 'chot', 'advance', 'ghata_amount', 'ghata_reason',
    'manual_total_rent', 'is_settled', 'status',
}


def rental_payload(data):
    """Plain dict of the rental fields present in a request body."""
    payload = {}
    for key, value in data.items():
        key = INPUT_ALIASES.get(key, key)
        if key in INPUT_FIELDS:
            payload[key] = value
    return payload


class RentalCarSerializer(serializers.ModelSerializer):
    class Meta:
        model = Car
        fields = ['id', 'brand', 'model', 'plate_number', 'hourly_rate', 'daily_rate', 'status']


class RentalSerializer(serializers.ModelSerializer):
    car = RentalCarSerializer(read_only=True)
    remaining_amount = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = Rental
        fields = [
            'id', 'car', 'owner', 'start_time', 'end_time',
            'customer_name', 'customer_phone', 'customer_occupation',
            'total_rent', 'manual_total_rent',
            'deduction_amount', 'deduction_reason', 'ghata_amount', 'ghata_reason', 'chot', 'advance',
            'final_amount_collected', 'remaining_amount', 'is_settled', 'status',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class RentalDetailSerializer(RentalSerializer):
    duration_hours = serializers.SerializerMethodField()
    duration_days = serializers.SerializerMethodField()
    remaining_hours = serializers.SerializerMethodField()

    class Meta(RentalSerializer.Meta):
        fields = RentalSerializer.Meta.fields + ['duration_hours', 'duration_days', 'remaining_hours']
        read_only_fields = fields

    def _hours(self, obj):
        if obj.duration is None:
            return None
        return obj.duration.total_seconds() / 3600

    def get_duration_hours(self, obj):
        hours = self._hours(obj)
        return round(hours, 2) if hours is not None else None

    def get_duration_days(self, obj):
        hours = self._hours(obj)
        return math.floor(hours / 24) if hours is not None else 0

    def get_remaining_hours(self, obj):
        hours = self._hours(obj)
        return math.ceil(hours % 24) if hours is not None else 0


class CompleteRentalSerializer(serializers.Serializer):
    end_time = serializers.DateTimeField(required=False, allow_null=True)
