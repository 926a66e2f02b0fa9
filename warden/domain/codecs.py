"""
Name: Metadata Codecs

Responsibilities:
  - Define the MetadataCodec port used at the JSON boundary of user_metadata
  - Provide the default JSON codec and a pydantic-model codec

Collaborators:
  - infrastructure/drivers/*: call encode() before writing and decode() after
    reading; they never inspect the payload
  - application/auth.py: default codec for AuthService

Notes:
  - encode() returns a JSON-compatible value (dict/list/str/number/bool/None);
    drivers serialize it with json
"""

from __future__ import annotations

from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


class MetadataCodec(Protocol[T]):
    """Encode/decode pair for caller-defined user metadata."""

    def encode(self, value: T) -> Any:
        """Value -> JSON-compatible structure."""
        ...

    def decode(self, raw: Any) -> T:
        """JSON-compatible structure -> value."""
        ...


class JsonCodec:
    """Pass-through codec for plain JSON values (dicts, lists, scalars)."""

    def encode(self, value: Any) -> Any:
        return value

    def decode(self, raw: Any) -> Any:
        return raw


class PydanticCodec(Generic[ModelT]):
    """Codec backed by a pydantic model (validated on decode)."""

    def __init__(self, model: type[ModelT]) -> None:
        self._model = model

    def encode(self, value: ModelT) -> Any:
        return value.model_dump(mode="json")

    def decode(self, raw: Any) -> ModelT:
        return self._model.model_validate(raw)


def encode_optional(codec: MetadataCodec[T], value: T | None) -> Any:
    """None stays None (SQL NULL); anything else goes through the codec."""
    return None if value is None else codec.encode(value)


def decode_optional(codec: MetadataCodec[T], raw: Any) -> T | None:
    return None if raw is None else codec.decode(raw)
