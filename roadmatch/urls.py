from django.urls import path

from .views import RoutingHealthAPIView, VehicleDataAPIView, VehicleTrailAPIView

app_name = "roadmatch"

urlpatterns = [
    path("api/vehicles/", VehicleDataAPIView.as_view(), name="vehicle-data"),
    path("api/vehicles/<str:vehicle_id>/trail/", VehicleTrailAPIView.as_view(), name="vehicle-trail"),
    path("api/routing/health/", RoutingHealthAPIView.as_view(), name="routing-health"),
]
