#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0

"""
Mint a development access token.

Usage:
    python -m civic_api.scripts.issue_token USER_ID ROLE [--name NAME]
        [--department-id ID] [--area AREA] [--minutes N]
"""

import argparse

from civic_api.models.enums import UserRole
from civic_api.services.auth import AuthService


def main(argv=None):
    parser = argparse.ArgumentParser(description="Issue a development JWT")
    parser.add_argument("user_id")
    parser.add_argument("role", choices=[role.value for role in UserRole])
    parser.add_argument("--name")
    parser.add_argument("--department-id")
    parser.add_argument("--area")
    parser.add_argument("--minutes", type=int, default=60)
    args = parser.parse_args(argv)

    token = AuthService().generate_token(
        args.user_id,
        args.role,
        name=args.name,
        department_id=args.department_id,
        area=args.area,
        expires_minutes=args.minutes
    )
    print(token)


if __name__ == "__main__":
    main()
