# SPDX-License-Identifier: Apache-2.0

"""
Application settings read from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


@dataclass
class Settings:
    """Runtime configuration for the API process."""
    environment: str = 'development'
    entity_store: str = 'mongodb'
    mongodb_uri: str = 'mongodb://localhost:27017/civic_resolution_dev'
    mongodb_database: str = 'civic_resolution_dev'
    jwt_secret: Optional[str] = None
    base_url: str = 'http://localhost:5000'
    otel_enabled: bool = True
    docs_enabled: bool = True

    @property
    def debug(self) -> bool:
        return self.environment == 'development'

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv('ENVIRONMENT', 'development'),
            entity_store=os.getenv('ENTITY_STORE', 'mongodb').lower(),
            mongodb_uri=os.getenv('MONGODB_URI', 'mongodb://localhost:27017/civic_resolution_dev'),
            mongodb_database=os.getenv('MONGODB_DATABASE', 'civic_resolution_dev'),
            jwt_secret=os.getenv('JWT_SECRET'),
            base_url=os.getenv('BASE_URL', 'http://localhost:5000'),
            otel_enabled=_flag('OTEL_ENABLED', 'true'),
            docs_enabled=_flag('DOCS_ENABLED', 'true')
        )
