from typing import Any, Callable, List, Optional, Sequence, Tuple

from .codec import U32, Codec, Fixed, Reader, Writer
from .errors import DeserializationError, LabelExceededLength


class Struct(Codec):
    """Named fields encoded back to back in declaration order.

    Sizes are computed from the value being encoded, so a field may itself be
    variable (an ``Optional`` or a nested ``Struct``).
    """

    def __init__(self, record_type: Callable[..., Any], fields: Sequence[Tuple[str, Codec]]) -> None:
        self.record_type = record_type
        self.fields: List[Tuple[str, Codec]] = list(fields)

    @property
    def fixed_size(self) -> Optional[int]:
        """Size of the encoding when every field is fixed-width, otherwise ``None``."""
        total = 0
        for _, codec in self.fields:
            if isinstance(codec, Fixed):
                total += codec.size
            elif isinstance(codec, Struct) and codec.fixed_size is not None:
                total += codec.fixed_size
            else:
                return None
        return total

    def byte_size(self, value: Any) -> int:
        return sum(codec.byte_size(getattr(value, name)) for name, codec in self.fields)

    def encode(self, writer: Writer, value: Any) -> None:
        for name, codec in self.fields:
            codec.encode(writer, getattr(value, name))

    def decode(self, reader: Reader) -> Any:
        values = {name: codec.decode(reader) for name, codec in self.fields}
        return self.record_type(**values)


class Vec(Codec):
    """u32 element count followed by the elements."""

    def __init__(self, item: Codec) -> None:
        self.item = item

    def byte_size(self, value: Sequence[Any]) -> int:
        return U32.size + sum(self.item.byte_size(v) for v in value)

    def encode(self, writer: Writer, value: Sequence[Any]) -> None:
        U32.encode(writer, len(value))
        for item in value:
            self.item.encode(writer, item)

    def decode(self, reader: Reader) -> List[Any]:
        count = U32.decode(reader)
        return [self.item.decode(reader) for _ in range(count)]


class VecBytes(Codec):
    """u32 length followed by raw bytes (borsh ``Vec<u8>``)."""

    def byte_size(self, value: bytes) -> int:
        return U32.size + len(value)

    def encode(self, writer: Writer, value: bytes) -> None:
        U32.encode(writer, len(value))
        writer.write(bytes(value))

    def decode(self, reader: Reader) -> bytes:
        return reader.take(U32.decode(reader))


class BorshString(Codec):
    """u32 byte length followed by UTF-8 text."""

    def byte_size(self, value: str) -> int:
        return U32.size + len(value.encode("utf-8"))

    def encode(self, writer: Writer, value: str) -> None:
        VecBytes().encode(writer, value.encode("utf-8"))

    def decode(self, reader: Reader) -> str:
        raw = VecBytes().decode(reader)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DeserializationError(f"string is not valid utf-8: {raw!r}") from exc


class FixedLabel(Codec):
    """UTF-8 text stored in a fixed number of bytes, NUL padded."""

    def __init__(self, size: int) -> None:
        self.size = size

    def byte_size(self, value: Any = None) -> int:
        return self.size

    def encode(self, writer: Writer, value: str) -> None:
        raw = value.encode("utf-8")
        if len(raw) > self.size:
            raise LabelExceededLength(f"label {value!r} is longer than {self.size} bytes")
        writer.write(raw.ljust(self.size, b"\x00"))

    def decode(self, reader: Reader) -> str:
        raw = reader.take(self.size).rstrip(b"\x00")
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DeserializationError(f"label is not valid utf-8: {raw!r}") from exc
