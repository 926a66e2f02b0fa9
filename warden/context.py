"""
===============================================================================
CRC CARD — warden/context.py (operation context)
===============================================================================

Responsibilities:
  - Keep an operation-scoped context in ContextVars (thread and async safe).
  - Let logs correlate a cleanup job or CLI run without threading ids through
    every call.

Collaborators:
  - crosscutting/logger.py: merges get_context_dict() into every record.
  - infrastructure/cleanup.py: sets operation_id per background job.
  - cli.py: sets operation_id/command per invocation.

Constraints:
  - Only strings; empty string means "not available".
===============================================================================
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Final

operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
operation_name_var: ContextVar[str] = ContextVar("operation_name", default="")

_CTX_OPERATION_ID: Final[str] = "operation_id"
_CTX_OPERATION: Final[str] = "operation"


def set_operation_context(*, operation_id: str = "", operation: str = "") -> None:
    operation_id_var.set(operation_id or "")
    operation_name_var.set(operation or "")


def get_context_dict() -> dict[str, str]:
    """Current context as a dict, skipping empty values."""
    ctx: dict[str, str] = {}

    if val := operation_id_var.get():
        ctx[_CTX_OPERATION_ID] = val
    if val := operation_name_var.get():
        ctx[_CTX_OPERATION] = val

    return ctx


def clear_context() -> None:
    """Reset at the end of a job so pooled threads do not leak context."""
    operation_id_var.set("")
    operation_name_var.set("")
