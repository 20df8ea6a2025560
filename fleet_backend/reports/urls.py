from django.urls import path
from .views import RentalReportView, StatsReportView

urlpatterns = [
    path('rent/', RentalReportView.as_view(), name='rental-report'),
    path('stats/', StatsReportView.as_view(), name='stats-report'),
]
