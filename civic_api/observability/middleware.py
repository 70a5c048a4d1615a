# SPDX-License-Identifier: Apache-2.0

"""
Observability Middleware

Flask hooks that tag each request span with the resource and caller, log
one line per request and echo trace and request ids back to the client.
"""

import time
import uuid
import logging
from flask import Flask, request, g
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

logger = logging.getLogger(__name__)

# Probe traffic is logged at debug level
QUIET_PATHS = ('/api/healthz',)


def add_observability_middleware(app: Flask, instrument: bool = True):
    """
    Add OpenTelemetry instrumentation and request logging to the app.

    Args:
        app: Flask application
        instrument: Whether to auto-instrument Flask (off when tracing is disabled)
    """
    if instrument:
        FlaskInstrumentor().instrument_app(app)

    @app.before_request
    def start_request():
        g.start_time = time.perf_counter()
        g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex
        g.trace_id = None

        span = trace.get_current_span()
        if span.is_recording():
            g.trace_id = format(span.get_span_context().trace_id, "032x")
            span.set_attributes({
                "civic.resource": request.blueprint or "app",
                "civic.request_id": g.request_id
            })

    @app.after_request
    def finish_request(response):
        duration_ms = round((time.perf_counter() - g.get('start_time', time.perf_counter())) * 1000, 2)
        user = g.get('user_context')

        span = trace.get_current_span()
        if span.is_recording() and user is not None:
            span.set_attributes({"user.id": user.user_id, "user.role": user.role})

        log = logger.debug if request.path in QUIET_PATHS else logger.info
        log(
            "HTTP request completed",
            extra={
                "method": request.method,
                "path": request.path,
                "resource": request.blueprint,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "user_id": user.user_id if user is not None else None,
                "role": user.role if user is not None else None,
                "request_id": g.get('request_id'),
                "trace_id": g.get('trace_id')
            }
        )

        response.headers['X-Request-ID'] = g.get('request_id', '')
        if g.get('trace_id'):
            response.headers['X-Trace-Id'] = g.trace_id

        return response
