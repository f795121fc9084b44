"""
Fixed width little-endian field helpers shared by the encapsulation and CIP
layers.
"""
import struct

from cipclient.errors import DecodeError


UINT8_FORMAT = "<B"
UINT16_FORMAT = "<H"
UINT32_FORMAT = "<I"
UINT64_FORMAT = "<Q"


def pack_uint8(value: int) -> bytes:
    return struct.pack(UINT8_FORMAT, value)


def pack_uint16(value: int) -> bytes:
    return struct.pack(UINT16_FORMAT, value)


def pack_uint32(value: int) -> bytes:
    return struct.pack(UINT32_FORMAT, value)


def pack_uint64(value: int) -> bytes:
    return struct.pack(UINT64_FORMAT, value)


class ByteReader(object):
    """
    Sequentially decode fields from a bytes-like buffer.

    Every read checks that the buffer holds enough bytes for the field and
    raises a :class:`DecodeError` naming the field when it does not.
    """

    def __init__(self, data: bytes):
        self._data = memoryview(bytes(data))
        self._offset = 0

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def _take(self, size: int, field: str) -> memoryview:
        if size < 0 or size > self.remaining:
            raise DecodeError(
                f"{field} needs {size} bytes at offset {self._offset}, "
                f"only {self.remaining} available"
            )
        chunk = self._data[self._offset : self._offset + size]
        self._offset += size
        return chunk

    def _unpack(self, fmt: str, field: str) -> int:
        return struct.unpack(fmt, self._take(struct.calcsize(fmt), field))[0]

    def uint8(self, field: str = "uint8") -> int:
        return self._unpack(UINT8_FORMAT, field)

    def uint16(self, field: str = "uint16") -> int:
        return self._unpack(UINT16_FORMAT, field)

    def uint32(self, field: str = "uint32") -> int:
        return self._unpack(UINT32_FORMAT, field)

    def uint64(self, field: str = "uint64") -> int:
        return self._unpack(UINT64_FORMAT, field)

    def read(self, size: int, field: str = "bytes") -> bytes:
        return bytes(self._take(size, field))

    def rest(self) -> bytes:
        """ Return every byte not yet consumed """
        return self.read(self.remaining)
