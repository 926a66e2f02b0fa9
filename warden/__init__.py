"""
warden: pluggable identity, session and cache engine.

Callers connect a driver (PostgreSQL or in-memory) and use the returned
handle directly or through AuthService / CacheService.
"""

__version__ = "0.1.0"
