"""
Name: UUIDv7 generator for the in-memory driver

Responsibilities:
  - Produce time-ordered ids with the same layout as the database's
    warden.uuid7(): 48-bit unix milliseconds, version 7, variant 10.
  - Keep ids strictly increasing within one process, so "ORDER BY id"
    matches insertion order like it does in PostgreSQL.

Notes:
  - Within the same millisecond the 12-bit rand_a field is used as a
    counter; on overflow the timestamp is bumped by one millisecond.
"""

from __future__ import annotations

import secrets
import threading
import time
from uuid import UUID

_lock = threading.Lock()
_last_ms = 0
_counter = 0

_COUNTER_MAX = 0xFFF


def new_id() -> UUID:
    global _last_ms, _counter

    with _lock:
        now_ms = time.time_ns() // 1_000_000
        if now_ms > _last_ms:
            _last_ms = now_ms
            _counter = secrets.randbits(11)
        else:
            _counter += 1
            if _counter > _COUNTER_MAX:
                _last_ms += 1
                _counter = 0
        unix_ms = _last_ms
        rand_a = _counter

    rand_b = secrets.randbits(62)
    value = (unix_ms & 0xFFFF_FFFF_FFFF) << 80
    value |= 0x7 << 76
    value |= rand_a << 64
    value |= 0b10 << 62
    value |= rand_b
    return UUID(int=value)
