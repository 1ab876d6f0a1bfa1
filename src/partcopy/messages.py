"""Queue message envelope for the copy protocol.

All three message kinds share one JSON envelope::

    {action, partIndex, uploadId, bucket, key,
     byteStart?, byteEnd?, complete, etag?, partNumber?}

and are decoded into a discriminated union on ``action``. Anything that does
not validate (unknown action, missing etag on a ``done``, negative index)
raises ProtocolError at decode time, before any handler runs.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError

from partcopy.errors import ProtocolError
from partcopy.partstore.models import ByteRange
from partcopy.session import SessionKey, resolve_session


class _Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    upload_id: str = Field(alias="uploadId", min_length=1)
    bucket: str = Field(min_length=1)
    key: str = Field(min_length=1)

    def session(self) -> SessionKey:
        return resolve_session(self.bucket, self.key, self.upload_id)

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready dict using wire field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class FetchMessage(_Envelope):
    """Copy one byte range from the source to the destination."""

    action: Literal["fetch"] = "fetch"
    part_index: int = Field(alias="partIndex", ge=0)
    byte_start: int = Field(alias="byteStart", ge=0)
    byte_end: int = Field(alias="byteEnd", ge=0)
    complete: bool = False

    @model_validator(mode="after")
    def _check_range(self) -> "FetchMessage":
        if self.byte_end < self.byte_start:
            raise ValueError("byteEnd must not precede byteStart")
        return self

    @property
    def byte_range(self) -> ByteRange:
        return ByteRange(self.byte_start, self.byte_end)


class DoneMessage(_Envelope):
    """A part was accepted by the destination."""

    action: Literal["done"] = "done"
    part_index: int = Field(alias="partIndex", ge=0)
    byte_start: int | None = Field(default=None, alias="byteStart")
    byte_end: int | None = Field(default=None, alias="byteEnd")
    complete: bool = True
    etag: str = Field(min_length=1)
    part_number: int = Field(alias="partNumber", ge=1)


class AllDoneMessage(_Envelope):
    """Every part of the session is complete; assemble the object."""

    action: Literal["all-done"] = "all-done"
    part_index: int | None = Field(default=None, alias="partIndex")
    complete: bool = True


Message = Annotated[
    Union[FetchMessage, DoneMessage, AllDoneMessage],
    Field(discriminator="action"),
]

_adapter: TypeAdapter[Message] = TypeAdapter(Message)


def decode_message(raw: bytes | str | dict[str, Any]) -> Message:
    """Decode a wire message into its tagged variant.

    Raises:
        ProtocolError: If the payload is not a valid message.
    """
    try:
        if isinstance(raw, dict):
            return _adapter.validate_python(raw)
        return _adapter.validate_json(raw)
    except PydanticValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
            for err in exc.errors()
        )
        raise ProtocolError(f"Invalid message: {details}") from exc


def encode_message(message: Message) -> str:
    """Serialize a message to its JSON wire form."""
    return message.model_dump_json(by_alias=True, exclude_none=True)
