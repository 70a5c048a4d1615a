# SPDX-License-Identifier: Apache-2.0

"""
Bearer token authentication for the API blueprints.

Identity is issued elsewhere; this module only checks the token and turns
its claims into the ``UserContext`` that services authorize against.
Failures raise ``AuthenticationException`` and are rendered by the central
error handler as 401 problem documents.
"""

from functools import wraps
from flask import request, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from ..domain.errors import AuthenticationException
from ..models.entities import UserContext
from ..services.auth import AuthService, TokenValidationError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """Resolves the caller of the current request from its bearer token."""

    def __init__(self, auth_service: AuthService):
        self.auth_service = auth_service

    @staticmethod
    def bearer_token() -> Optional[str]:
        """Token from ``Authorization: Bearer <token>``, or None."""
        scheme, _, token = request.headers.get('Authorization', '').partition(' ')
        if scheme.lower() != 'bearer':
            return None
        return token.strip() or None

    @staticmethod
    def user_context(claims: Dict[str, Any]) -> UserContext:
        """
        Build the caller's context from validated claims.

        Department admins carry ``department_id`` and area super admins carry
        ``area``; scope checks only apply when the claim is present.
        """
        return UserContext(
            user_id=claims["sub"],
            role=claims["role"],
            name=claims.get("name"),
            department_id=claims.get("department_id"),
            area=claims.get("area"),
            token_payload=claims,
            ip_address=request.remote_addr,
            user_agent=request.headers.get('User-Agent', '')
        )

    def authenticate(self) -> UserContext:
        """
        Validate the request's bearer token.

        Raises:
            AuthenticationException: If the token is missing or invalid
        """
        with tracer.start_as_current_span("auth.middleware.authenticate") as span:
            token = self.bearer_token()
            if token is None:
                span.set_attribute("auth.result", "missing_token")
                logger.warning("Authentication failed: missing token", extra={"path": request.path})
                raise AuthenticationException("Missing bearer token")

            try:
                claims = self.auth_service.validate_token(token, "access")
            except TokenValidationError as e:
                span.set_attribute("auth.result", "invalid_token")
                logger.warning("Authentication failed", extra={"path": request.path, "reason": str(e)})
                raise AuthenticationException(str(e), "invalid-token", "Invalid Token")

            user = self.user_context(claims)
            span.set_attributes({
                "auth.result": "success",
                "user.id": user.user_id,
                "user.role": user.role
            })
            logger.debug("Authenticated request", extra={"user_id": user.user_id, "role": user.role})
            return user


def require_auth(auth_middleware: AuthMiddleware) -> Callable:
    """Decorator binding a specific middleware; the user lands on ``g.user_context``."""
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            g.user_context = auth_middleware.authenticate()
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_jwt(f: Callable) -> Callable:
    """Require a bearer token using the application's auth middleware."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.user_context = current_app.auth_middleware.authenticate()
        return f(*args, **kwargs)
    return decorated_function


def current_user() -> UserContext:
    """User context of the authenticated request."""
    return g.user_context
