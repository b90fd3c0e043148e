"""Binary model container: version header and primitive readers/writers.

All integers are little endian. Strings and blobs are written as an ``int32``
byte length followed by the bytes. A model starts with a header::

    8 bytes   model signature (ASCII, space padded)
    uint32    version written
    uint32    minimum reader version able to read it
    uint32    oldest version the writer could read back
    string    loader signature

followed by the model-specific payload.
"""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import Any, BinaryIO

import joblib

from fastforest.errors import ModelFormatError, VersionMismatchError

SIGNATURE_SIZE = 8


@dataclass(frozen=True)
class VersionInfo:
    """Version record of a model format.

    Parameters
    ----------
    model_signature : str
        Eight-character tag identifying the model type.
    ver_written : int
        Version this code writes.
    ver_readable : int
        Oldest reader version that can read what this code writes.
    ver_we_can_read_back : int
        Oldest written version this code can still load.
    loader_signature : str
        Name of the loader registered for the model.
    """

    model_signature: str
    ver_written: int
    ver_readable: int
    ver_we_can_read_back: int
    loader_signature: str

    def __post_init__(self) -> None:
        if len(self.model_signature.encode("ascii")) > SIGNATURE_SIZE:
            raise ValueError(f"model_signature longer than {SIGNATURE_SIZE} bytes")
        if not self.ver_we_can_read_back <= self.ver_readable <= self.ver_written:
            raise ValueError("Expected ver_we_can_read_back <= ver_readable <= ver_written")


@dataclass(frozen=True)
class ModelHeader:
    """Header as read from a stream."""

    model_signature: str
    ver_written: int
    ver_readable: int
    ver_we_can_read_back: int
    loader_signature: str


class ModelWriter:
    """Writes primitive values to a binary stream."""

    def __init__(self, stream: BinaryIO):
        self.stream = stream

    def write_bool_byte(self, value: bool) -> None:
        self.stream.write(struct.pack("<B", 1 if value else 0))

    def write_int32(self, value: int) -> None:
        self.stream.write(struct.pack("<i", int(value)))

    def write_uint32(self, value: int) -> None:
        self.stream.write(struct.pack("<I", int(value)))

    def write_bytes(self, data: bytes) -> None:
        self.write_int32(len(data))
        self.stream.write(data)

    def write_string(self, value: str) -> None:
        self.write_bytes(value.encode("utf-8"))

    def write_object(self, obj: Any) -> None:
        """Length-prefixed joblib dump of ``obj``."""
        buffer = io.BytesIO()
        joblib.dump(obj, buffer)
        self.write_bytes(buffer.getvalue())

    def write_header(self, version: VersionInfo) -> None:
        signature = version.model_signature.encode("ascii").ljust(SIGNATURE_SIZE, b" ")
        self.stream.write(signature)
        self.write_uint32(version.ver_written)
        self.write_uint32(version.ver_readable)
        self.write_uint32(version.ver_we_can_read_back)
        self.write_string(version.loader_signature)


class ModelReader:
    """Reads primitive values written by :class:`ModelWriter`."""

    def __init__(self, stream: BinaryIO):
        self.stream = stream

    def _read_exact(self, size: int) -> bytes:
        data = self.stream.read(size)
        if len(data) != size:
            raise ModelFormatError(f"Unexpected end of model data: wanted {size} bytes, got {len(data)}")
        return data

    def read_bool_byte(self) -> bool:
        (value,) = struct.unpack("<B", self._read_exact(1))
        if value not in (0, 1):
            raise ModelFormatError(f"Invalid boolean byte: {value}")
        return value == 1

    def read_int32(self) -> int:
        (value,) = struct.unpack("<i", self._read_exact(4))
        return int(value)

    def read_uint32(self) -> int:
        (value,) = struct.unpack("<I", self._read_exact(4))
        return int(value)

    def read_bytes(self) -> bytes:
        size = self.read_int32()
        if size < 0:
            raise ModelFormatError(f"Negative length prefix: {size}")
        return self._read_exact(size)

    def read_string(self) -> str:
        return self.read_bytes().decode("utf-8")

    def read_object(self) -> Any:
        return joblib.load(io.BytesIO(self.read_bytes()))

    def read_header(self) -> ModelHeader:
        signature = self._read_exact(SIGNATURE_SIZE).decode("ascii", errors="replace").rstrip(" ")
        return ModelHeader(
            model_signature=signature,
            ver_written=self.read_uint32(),
            ver_readable=self.read_uint32(),
            ver_we_can_read_back=self.read_uint32(),
            loader_signature=self.read_string(),
        )


def check_at_model(header: ModelHeader, version: VersionInfo) -> None:
    """Fail unless a model with ``header`` can be read by ``version``.

    Raises
    ------
    VersionMismatchError
        On a signature mismatch, a model newer than this reader supports, or a
        model older than ``version.ver_we_can_read_back``.
    """
    expected = version.model_signature.rstrip(" ")
    if header.model_signature != expected:
        raise VersionMismatchError(
            f"Model signature mismatch: expected '{expected}', found '{header.model_signature}'"
        )
    if header.ver_readable > version.ver_written:
        raise VersionMismatchError(
            f"Model too new: requires reader version 0x{header.ver_readable:08X}, "
            f"this reader is 0x{version.ver_written:08X}"
        )
    if header.ver_written < version.ver_we_can_read_back:
        raise VersionMismatchError(
            f"Model too old: written with version 0x{header.ver_written:08X}, "
            f"oldest readable is 0x{version.ver_we_can_read_back:08X}"
        )
