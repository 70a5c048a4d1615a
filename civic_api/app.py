# SPDX-License-Identifier: Apache-2.0

"""
Civic Resolution API - Flask Application Factory

This module initializes the Flask application with OpenAPI 3.0 support,
configures middleware, and wires the workflow, tendering and leaderboard
services onto the chosen entity store.
"""

import logging
from typing import Optional
from flask import jsonify
from flask_openapi3 import OpenAPI, Info

from .config import Settings
from .observability.config import setup_observability
from .observability.middleware import add_observability_middleware
from .middleware.error_handler import ErrorHandlerMiddleware
from .middleware.auth import AuthMiddleware
from .services.auth import AuthService
from .services.hal import create_hal_formatter
from .services.health import HealthCheckService
from .services.leaderboard import LeaderboardService
from .services.memory_store import MemoryStore
from .services.mongodb import MongoDBService
from .services.store import EntityStore
from .services.tendering import TenderService
from .services.workflow import WorkflowService

logger = logging.getLogger(__name__)

info = Info(
    title="Civic Resolution API",
    version="1.0.0",
    description="Civic issue workflow, contractor tendering and community leaderboard with HAL responses"
)


def build_store(settings: Settings) -> EntityStore:
    """Create the configured entity store backend."""
    if settings.entity_store == 'memory':
        return MemoryStore()
    if settings.entity_store == 'mongodb':
        return MongoDBService(settings.mongodb_uri, settings.mongodb_database)
    raise ValueError(f"Unknown ENTITY_STORE: {settings.entity_store}")


def create_app(settings: Optional[Settings] = None, store: Optional[EntityStore] = None) -> OpenAPI:
    """
    Build the Flask application.

    Args:
        settings: Runtime configuration, read from the environment when omitted
        store: Entity store override, built from settings when omitted

    Returns:
        Configured OpenAPI (Flask) application
    """
    settings = settings or Settings.from_env()

    # Initialize observability first
    setup_observability(settings.environment, settings.otel_enabled)

    app = OpenAPI(__name__, info=info, doc_ui=settings.docs_enabled)
    add_observability_middleware(app, instrument=settings.otel_enabled)

    app.config['ENVIRONMENT'] = settings.environment
    app.config['DEBUG'] = settings.debug
    app.config['BASE_URL'] = settings.base_url
    app.config['ENTITY_STORE'] = settings.entity_store

    store = store or build_store(settings)
    workflow_service = WorkflowService(store)
    tender_service = TenderService(store, workflow_service)
    leaderboard_service = LeaderboardService(store)
    health_service = HealthCheckService(store, settings.environment)
    auth_service = AuthService(settings.jwt_secret)

    hal_formatter = create_hal_formatter(settings.base_url)
    auth_middleware = AuthMiddleware(auth_service)
    ErrorHandlerMiddleware(app, hal_formatter)

    # Make services available to routes
    app.entity_store = store
    app.workflow_service = workflow_service
    app.tender_service = tender_service
    app.leaderboard_service = leaderboard_service
    app.auth_service = auth_service
    app.hal_formatter = hal_formatter
    app.auth_middleware = auth_middleware

    from .routes.issues import issues_bp
    from .routes.tenders import tenders_bp
    from .routes.bids import bids_bp
    from .routes.work_progress import work_progress_bp
    from .routes.contractors import contractors_bp
    from .routes.leaderboard import leaderboard_bp

    app.register_api(issues_bp)
    app.register_api(tenders_bp)
    app.register_api(bids_bp)
    app.register_api(work_progress_bp)
    app.register_api(contractors_bp)
    app.register_api(leaderboard_bp)

    @app.route('/api/healthz')
    def health_check():
        """Health check with entity store status."""
        health_data = health_service.get_health()
        status_code = 200 if health_data["status"] == "healthy" else 503
        return jsonify(health_data), status_code

    logger.info(
        "Application created",
        extra={"environment": settings.environment, "entity_store": settings.entity_store}
    )
    return app
