# SPDX-License-Identifier: Apache-2.0

"""
Health Check Service

Reports the health of the entity store backend for the healthz endpoint.
"""

import time
from typing import Dict, Any
from opentelemetry import trace

from ..models.base import utcnow
from ..models.responses import HealthCheckResponse
from .store import EntityStore

tracer = trace.get_tracer(__name__)

SERVICE_VERSION = "1.0.0"


class HealthCheckService:
    """Service for dependency health monitoring."""

    def __init__(self, store: EntityStore, environment: str):
        self.store = store
        self.environment = environment

    def get_health(self) -> Dict[str, Any]:
        """Get health status including the store backend and check latency."""
        with tracer.start_as_current_span("health.check") as span:
            start_time = time.time()
            store_health = self.store.health_check()
            store_health["response_time_ms"] = round((time.time() - start_time) * 1000, 2)

            overall_status = "healthy" if store_health.get("status") == "healthy" else "unhealthy"
            span.set_attributes({
                "health.overall_status": overall_status,
                "health.store_backend": store_health.get("backend", "unknown")
            })

            return HealthCheckResponse(
                status=overall_status,
                version=SERVICE_VERSION,
                environment=self.environment,
                timestamp=utcnow(),
                dependencies={"store": store_health}
            ).model_dump(mode="json")
