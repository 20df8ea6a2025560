from django.contrib import admin
from .models import Rental


@admin.register(Rental)
class RentalAdmin(admin.ModelAdmin):
    list_display = ['id', 'car', 'customer_name', 'start_time', 'end_time', 'status',
                    'total_rent', 'final_amount_collected', 'is_settled']
    list_filter = ['status', 'is_settled', 'start_time']
    search_fields = ['customer_name', 'customer_phone', 'car__plate_number']
    # car status and settlement are owned by RentalLifecycle
    readonly_fields = ['car', 'status', 'total_rent', 'final_amount_collected', 'created_at', 'updated_at']
    ordering = ['-created_at']

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('car', 'owner')
