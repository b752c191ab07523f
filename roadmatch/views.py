from __future__ import annotations

import logging
import re

from django.http import JsonResponse
from django.views.generic import View

from .services import get_tracking_service, get_tracking_snapshot

logger = logging.getLogger(__name__)

VEHICLE_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")


class VehicleDataAPIView(View):
    def get(self, request, *args, **kwargs):
        snapshot = get_tracking_snapshot()
        return JsonResponse(
            {
                "timestamp": snapshot["generation_time"],
                "vehicles": snapshot["vehicles"],
                "routing": snapshot["routing"],
            }
        )


class VehicleTrailAPIView(View):
    def get(self, request, *args, **kwargs):
        vehicle_id = self.kwargs["vehicle_id"]
        if not VEHICLE_ID_PATTERN.fullmatch(vehicle_id):
            logger.info("Rejected trail request with invalid vehicle id %r", vehicle_id)
            return JsonResponse({"error": "Invalid vehicle id"}, status=400)

        service = get_tracking_service()
        if not service.has_vehicle(vehicle_id):
            logger.info("Trail requested for unknown vehicle %s", vehicle_id)
            return JsonResponse({"error": "Vehicle not found"}, status=404)

        service.step()
        trail = service.trail(vehicle_id)
        return JsonResponse({"vehicle": vehicle_id, "length": len(trail), "trail": trail})


class RoutingHealthAPIView(View):
    def get(self, request, *args, **kwargs):
        service = get_tracking_service()
        health = service.service_health()
        return JsonResponse(
            {
                "enabled": service.controller.routing_enabled,
                "provider": service.config.provider,
                "services": health,
                "healthy": all(health.values()),
            }
        )
