"""Byte cursors and the scalar codecs every account and instruction layout is built from.

Scalars are borsh encoded: little-endian fixed-width integers, one byte booleans and
fixed-size byte arrays. ``Optional`` adds the one byte presence tag used by every guard slot.
"""

from typing import Any, Tuple

from borsh_construct import Bool, I64 as _I64, U8 as _U8, U16 as _U16, U32 as _U32, U64 as _U64
from construct import Adapter, Bytes, Construct
from solders.pubkey import Pubkey

from .errors import BufferUnderrun, DeserializationError, MalformedOptionTag


class Reader:
    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = bytes(data)
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, size: int) -> bytes:
        if size > self.remaining:
            raise BufferUnderrun(self.offset, size, max(self.remaining, 0))
        chunk = self.data[self.offset : self.offset + size]
        self.offset += size
        return chunk


class Writer:
    """Fills a buffer pre-sized by the caller from a layout's ``byte_size``."""

    def __init__(self, size: int) -> None:
        self._buffer = bytearray(size)
        self.offset = 0

    def write(self, chunk: bytes) -> None:
        end = self.offset + len(chunk)
        self._buffer[self.offset : end] = chunk
        self.offset = end

    def getvalue(self) -> bytes:
        return bytes(self._buffer[: self.offset])


class Codec:
    def byte_size(self, value: Any) -> int:
        raise NotImplementedError

    def encode(self, writer: Writer, value: Any) -> None:
        raise NotImplementedError

    def decode(self, reader: Reader) -> Any:
        raise NotImplementedError

    def serialize(self, value: Any) -> bytes:
        writer = Writer(self.byte_size(value))
        self.encode(writer, value)
        return writer.getvalue()

    def deserialize(self, data: bytes, offset: int = 0) -> Tuple[Any, int]:
        """Returns the decoded value and the offset just past it."""
        reader = Reader(data, offset)
        value = self.decode(reader)
        return value, reader.offset


class Fixed(Codec):
    """A fixed-width construct (borsh scalar, byte array) viewed as a codec."""

    def __init__(self, subcon: Construct) -> None:
        self.subcon = subcon
        self.size = subcon.sizeof()

    def byte_size(self, value: Any = None) -> int:
        return self.size

    def encode(self, writer: Writer, value: Any) -> None:
        writer.write(self.subcon.build(value))

    def decode(self, reader: Reader) -> Any:
        return self.subcon.parse(reader.take(self.size))


class _Bool(Fixed):
    """A borsh bool; bytes other than 0 and 1 are rejected rather than read as true."""

    def decode(self, reader: Reader) -> bool:
        offset = reader.offset
        raw = reader.take(self.size)[0]
        if raw > 1:
            raise DeserializationError(f"invalid bool byte {raw} at offset {offset} (expected 0 or 1)")
        return raw == 1


class _PubkeyAdapter(Adapter):
    def _decode(self, obj, context, path) -> Pubkey:
        return Pubkey.from_bytes(obj)

    def _encode(self, obj, context, path) -> bytes:
        return bytes(obj)


U8 = Fixed(_U8)
U16 = Fixed(_U16)
U32 = Fixed(_U32)
U64 = Fixed(_U64)
I64 = Fixed(_I64)
BOOL = _Bool(Bool)
PUBKEY = Fixed(_PubkeyAdapter(Bytes(32)))


def fixed_bytes(size: int) -> Fixed:
    return Fixed(Bytes(size))


class Optional(Codec):
    """``None`` is a single ``0`` byte; a value is ``1`` followed by the inner encoding."""

    def __init__(self, inner: Codec) -> None:
        self.inner = inner

    def byte_size(self, value: Any) -> int:
        if value is None:
            return 1
        return 1 + self.inner.byte_size(value)

    def encode(self, writer: Writer, value: Any) -> None:
        if value is None:
            U8.encode(writer, 0)
            return
        U8.encode(writer, 1)
        self.inner.encode(writer, value)

    def decode(self, reader: Reader) -> Any:
        offset = reader.offset
        tag = U8.decode(reader)
        if tag == 0:
            return None
        if tag != 1:
            raise MalformedOptionTag(tag, offset)
        return self.inner.decode(reader)
