# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

Bearer token authentication and RFC 7807 error rendering for the civic
resolution API.
"""
