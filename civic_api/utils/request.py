# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request utilities for extracting and validating request data.
"""

from flask import request
from typing import Any, Dict, List, Type, TypeVar
from pydantic import BaseModel, ValidationError
import logging

from ..domain.errors import ValidationException

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def format_validation_errors(validation_error: ValidationError) -> List[Dict[str, Any]]:
    """
    Format Pydantic validation errors for API response.

    Args:
        validation_error: Pydantic ValidationError

    Returns:
        List of formatted error dictionaries
    """
    errors = []

    for error in validation_error.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        value = error.get("input")
        errors.append({
            "field": field_path or "body",
            "message": error["msg"],
            "type": error["type"],
            "input": value if isinstance(value, (str, int, float, bool, type(None))) else None
        })

    return errors


class RequestParser:
    """Utility for parsing and validating request data."""

    @staticmethod
    def parse_json_body(model_class: Type[M]) -> M:
        """
        Validate the JSON request body against a Pydantic model.

        Raises:
            ValidationException: If the body is missing, not JSON or invalid
        """
        data = request.get_json(silent=True)
        if data is None:
            data = {} if not request.data else None
        if not isinstance(data, dict):
            raise ValidationException("Request body must be a JSON object")

        try:
            return model_class.model_validate(data)
        except ValidationError as e:
            errors = format_validation_errors(e)
            logger.warning(
                "Request body validation failed",
                extra={
                    "model": model_class.__name__,
                    "path": request.path,
                    "error_count": len(errors)
                }
            )
            raise ValidationException("Request validation failed", errors)

    @staticmethod
    def parse_query(model_class: Type[M]) -> M:
        """
        Validate query string parameters against a Pydantic model.

        Empty values are treated as absent.

        Raises:
            ValidationException: If a parameter is invalid
        """
        params = {key: value for key, value in request.args.items() if value != ""}
        if "page_size" in params and "size" not in params:
            params["size"] = params.pop("page_size")
        try:
            return model_class.model_validate(params)
        except ValidationError as e:
            raise ValidationException("Invalid query parameters", format_validation_errors(e))
