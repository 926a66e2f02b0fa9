"""
Name: Metadata Codec Tests
"""

import pytest
from pydantic import BaseModel, ValidationError


class Profile(BaseModel):
    name: str
    age: int | None = None


@pytest.mark.unit
class TestCodecs:
    def test_json_codec_is_identity(self):
        from warden.domain.codecs import JsonCodec

        codec = JsonCodec()
        value = {"name": "Lucy", "tags": ["a"]}

        assert codec.decode(codec.encode(value)) == value

    def test_pydantic_codec(self):
        from warden.domain.codecs import PydanticCodec

        codec = PydanticCodec(Profile)

        assert codec.encode(Profile(name="Lucy")) == {"name": "Lucy", "age": None}
        assert codec.decode({"name": "Lucy", "age": 8}) == Profile(name="Lucy", age=8)

    def test_pydantic_codec_validates_on_decode(self):
        from warden.domain.codecs import PydanticCodec

        with pytest.raises(ValidationError):
            PydanticCodec(Profile).decode({"age": "not-a-number"})

    def test_optional_helpers_keep_none(self):
        from warden.domain.codecs import PydanticCodec, decode_optional, encode_optional

        codec = PydanticCodec(Profile)

        assert encode_optional(codec, None) is None
        assert decode_optional(codec, None) is None
