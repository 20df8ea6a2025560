from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from rentals.serializers import RentalSerializer
from .services import rental_report, stats_report


class RentalReportView(APIView):
    """Collected revenue for a car / month / date range (returned rentals by default)."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        params = request.query_params
        filters = {
            'car_id': params.get('car_id') or params.get('carId'),
            'month': params.get('month'),
            'start_date': params.get('start_date') or params.get('startDate'),
            'end_date': params.get('end_date') or params.get('endDate'),
            'include_active': (params.get('include_active') or params.get('includeActive')) == 'true',
        }
        report = rental_report(request.user, **filters)
        return Response({
            'meta': {
                'total_collected': report['total_collected'],
                'count': report['count'],
                'active_count': report['active_count'],
                'completed_count': report['completed_count'],
                'filters': filters,
            },
            'rentals': RentalSerializer(report['rentals'], many=True).data,
        })


class StatsReportView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(stats_report(request.user))
