"""
===============================================================================
CRC CARD — infrastructure/db/errors.py
===============================================================================

Component:
  Typed pool/connectivity errors

Responsibilities:
  - Avoid generic RuntimeError for connectivity problems.
  - Stay inside the DriverError family so callers see "backend unavailable".
===============================================================================
"""

from ...crosscutting.exceptions import DriverError


class DatabaseConnectionError(DriverError):
    """Failed to acquire or validate a connection from the pool."""

    error_code: str = "DATABASE_CONNECTION_ERROR"
