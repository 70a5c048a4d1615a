# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT bearer token validation.

Identity is owned by an external provider that signs HS256 tokens with a
shared secret. This service only verifies them and turns the claims into a
UserContext; ``generate_token`` exists for development scripts and tests.
"""

import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from opentelemetry import trace
import logging

from ..models.enums import UserRole

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ("sub", "role")


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """
    JWT authentication service with HS256 signing.
    """

    def __init__(self, secret: Optional[str] = None, algorithm: str = "HS256"):
        """
        Initialize the authentication service.

        Args:
            secret: Shared signing secret, defaults to JWT_SECRET
            algorithm: JWT signing algorithm
        """
        self.secret = secret or self._get_secret()
        self.algorithm = algorithm
        self.access_token_expire_minutes = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

    def _get_secret(self) -> str:
        """Get signing secret from environment."""
        secret = os.getenv("JWT_SECRET")
        if secret:
            return secret

        logger.warning("No JWT_SECRET found, using development secret")
        return "dev-secret-change-me"

    def generate_token(
        self,
        user_id: str,
        role: str,
        name: Optional[str] = None,
        department_id: Optional[str] = None,
        area: Optional[str] = None,
        expires_minutes: Optional[int] = None
    ) -> str:
        """
        Issue an access token the way the identity provider does.

        Args:
            user_id: Subject claim
            role: One of the UserRole values
            name: Display name
            department_id: Department claim for department admins
            area: Area claim for area super admins
            expires_minutes: Override for the token lifetime

        Returns:
            Encoded JWT
        """
        with tracer.start_as_current_span("auth.generate_token") as span:
            span.set_attributes({
                "auth.operation": "generate_token",
                "user.id": user_id,
                "user.role": str(UserRole(role).value)
            })

            now = datetime.now(timezone.utc)
            lifetime = expires_minutes if expires_minutes is not None else self.access_token_expire_minutes
            payload: Dict[str, Any] = {
                "sub": user_id,
                "role": UserRole(role).value,
                "name": name,
                "iat": now,
                "exp": now + timedelta(minutes=lifetime),
                "type": "access"
            }
            if department_id:
                payload["department_id"] = department_id
            if area:
                payload["area"] = area

            token = jwt.encode(payload, self.secret, algorithm=self.algorithm)
            logger.debug("JWT token generated", extra={"user_id": user_id, "role": payload["role"]})
            return token

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid, expired or lacks required claims
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attributes({
                "auth.operation": "validate_token",
                "auth.token_type": token_type
            })

            try:
                payload = jwt.decode(
                    token,
                    self.secret,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True, "require": ["exp", "sub"]}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            # Verify token type
            if payload.get("type", token_type) != token_type:
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError(f"Invalid token type. Expected {token_type}")

            missing = [claim for claim in REQUIRED_CLAIMS if not payload.get(claim)]
            if missing:
                span.set_attribute("auth.validation_result", "missing_claims")
                raise TokenValidationError(f"Token is missing claims: {', '.join(missing)}")

            try:
                UserRole(payload["role"])
            except ValueError:
                span.set_attribute("auth.validation_result", "unknown_role")
                raise TokenValidationError(f"Unknown role: {payload['role']}")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": payload["sub"],
                "user.role": payload["role"]
            })

            logger.debug(
                "Token validated successfully",
                extra={
                    "user_id": payload.get("sub"),
                    "role": payload.get("role"),
                    "token_type": token_type
                }
            )

            return payload
