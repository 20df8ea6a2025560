from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import CarViewSet, MyCarsView

router = DefaultRouter()
router.register(r'cars', CarViewSet, basename='car')

urlpatterns = [
    path('', include(router.urls)),
    path('my-cars/', MyCarsView.as_view(), name='my-cars'),
]
