"""
In-memory driver.

For testing and local development. NOT FOR PRODUCTION.
Data is lost on process restart.
"""

from .driver import InMemoryConnection, InMemoryDriver

__all__ = ["InMemoryDriver", "InMemoryConnection"]
