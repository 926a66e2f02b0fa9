"""Public facades: AuthService and CacheService."""

from .auth import AuthService
from .cache import CacheNamespace, CacheService, ResourceType

__all__ = ["AuthService", "CacheService", "CacheNamespace", "ResourceType"]
