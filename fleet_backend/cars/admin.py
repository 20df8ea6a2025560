from django.contrib import admin
from .models import Car, MaintenanceRecord


class MaintenanceRecordInline(admin.TabularInline):
    model = MaintenanceRecord
    extra = 0
    readonly_fields = ['id', 'description', 'amount', 'date', 'odometer_km', 'created_at']
    can_delete = False


@admin.register(Car)
class CarAdmin(admin.ModelAdmin):
    list_display = ['plate_number', 'brand', 'model', 'owner', 'status', 'hourly_rate', 'daily_rate', 'last_serviced_at']
    list_filter = ['status', 'fuel_type', 'transmission']
    search_fields = ['plate_number', 'brand', 'model', 'owner__username']
    readonly_fields = ['last_serviced_at', 'last_serviced_km', 'created_at', 'updated_at']
    ordering = ['-created_at']
    inlines = [MaintenanceRecordInline]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('owner')
