# SPDX-License-Identifier: Apache-2.0

"""
Civic issue resolution engine.

Issue workflow, assignment routing, contractor tendering and the community
leaderboard behind a HAL/JSON HTTP API.
"""

__version__ = "1.0.0"
