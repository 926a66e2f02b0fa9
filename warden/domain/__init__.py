"""
============================================================
CRC CARD — domain/__init__.py
============================================================
Module: domain (public surface of the domain layer)

Responsibilities:
  - Re-export entities, write-side value objects, codecs and driver ports.

Rules:
  - Only domain contracts/entities here.
  - No infrastructure imports.
============================================================
"""

from .codecs import JsonCodec, MetadataCodec, PydanticCodec
from .drivers import AuthDriver, CacheDriver, ConnectedDriver, Driver
from .entities import (
    IGNORE,
    CacheEntry,
    IPAddress,
    Module,
    ModuleVersion,
    OneTimeToken,
    OneTimeTokenType,
    Session,
    User,
    UserInsert,
    UserLookupField,
    UserSearchFields,
    UserUpdate,
)

__all__ = [
    # Entities
    "User",
    "Session",
    "OneTimeToken",
    "CacheEntry",
    "ModuleVersion",
    # Enums
    "OneTimeTokenType",
    "Module",
    "UserLookupField",
    # Write side
    "IGNORE",
    "UserInsert",
    "UserUpdate",
    "UserSearchFields",
    "IPAddress",
    # Codecs
    "MetadataCodec",
    "JsonCodec",
    "PydanticCodec",
    # Ports
    "Driver",
    "AuthDriver",
    "CacheDriver",
    "ConnectedDriver",
]
