"""
Message router requests and replies carry a service code addressed to an
object inside the target device.

.. code-block:: console

    request
    +---------+-----------+--------------+--------------+
    | Service | Path_Size | Path ....    | Data ....    |
    |  uint8  | uint8 (w) | segments     |              |
    +---------+-----------+--------------+--------------+

    reply
    +---------+----------+---------+---------------+-----------------+--------+
    | Service | Reserved | General | Ext_Status_Sz | Ext_Status .... | Data   |
    |  uint8  |  uint8   |  uint8  |   uint8 (w)   | uint16 words    |        |
    +---------+----------+---------+---------------+-----------------+--------+

Sizes marked (w) count 16-bit words. A reply's service code is the request's
service code with the reply flag set.
"""
import enum
import logging

from collections import namedtuple
from typing import Sequence

from cipclient.cip import status
from cipclient.codec import ByteReader, pack_uint8
from cipclient.errors import DecodeError, ProtocolError, ServiceMismatchError


logger = logging.getLogger(__name__)


REPLY_FLAG = 0x80


class Service(enum.IntEnum):
    GetAttributeAll = 0x01
    SetAttributeAll = 0x02
    GetAttributeList = 0x03
    SetAttributeList = 0x04
    Reset = 0x05
    Start = 0x06
    Stop = 0x07
    Create = 0x08
    Delete = 0x09
    MultipleServicePacket = 0x0A
    ApplyAttributes = 0x0D
    GetAttributeSingle = 0x0E
    SetAttributeSingle = 0x10
    FindNextObjectInstance = 0x11
    Restore = 0x15
    Save = 0x16
    Nop = 0x17
    GetMember = 0x18
    SetMember = 0x19
    InsertMember = 0x1A
    RemoveMember = 0x1B
    GroupSync = 0x1C
    UnconnectedSend = 0x52


RouterRequest = namedtuple("RouterRequest", ("service", "path", "data"))

RouterResponse = namedtuple(
    "RouterResponse",
    ("service", "reserved", "general_status", "extended_status_size", "extended_status", "data"),
)


def encode_path(segments: Sequence[bytes]) -> bytes:
    """ Return the concatenated path segments.

    Raises a ``ValueError`` if the path is not a whole number of words.
    """
    path = b"".join(bytes(segment) for segment in segments)
    if len(path) % 2:
        raise ValueError(f"Path size ({len(path)} bytes) must be a whole number of words")
    return path


def build_request(service: int, path: Sequence[bytes], data: bytes = b"") -> bytes:
    """ Encode a message router request.

    :param service: The service code to invoke.

    :param path: A sequence of encoded path segments selecting the target
      object.

    :param data: Service specific request data.
    """
    encoded_path = encode_path(path)
    return (
        pack_uint8(service)
        + pack_uint8(len(encoded_path) // 2)
        + encoded_path
        + bytes(data or b"")
    )


def encode_request(request: RouterRequest) -> bytes:
    return build_request(request.service, request.path, request.data)


def parse_response(data: bytes) -> RouterResponse:
    """ Decode a message router reply.

    Raises a :class:`ProtocolError` if the reply is too short to hold its
    fixed fields and declared extended status.
    """
    reader = ByteReader(data)
    try:
        service = reader.uint8("service")
        reserved = reader.uint8("reserved")
        general_status = reader.uint8("general status")
        extended_status_size = reader.uint8("extended status size")
        extended_status = reader.read(2 * extended_status_size, "extended status")
    except DecodeError as exc:
        raise ProtocolError(f"Malformed message router reply: {exc}") from None

    return RouterResponse(
        service,
        reserved,
        general_status,
        extended_status_size,
        extended_status,
        reader.rest(),
    )


def check_response(response: RouterResponse, service: int) -> None:
    """ Validate a reply to a request for ``service``.

    Raises a :class:`ProtocolError` carrying the statuses verbatim when the
    general status reports a failure, or a :class:`ServiceMismatchError` if
    the reply is not for the expected service.
    """
    if response.general_status != status.SUCCESS:
        raise ProtocolError(
            f"Service 0x{response.service & ~REPLY_FLAG & 0xFF:02x} failed: "
            f"{status.describe(response.general_status)} "
            f"(extended status {response.extended_status.hex() or 'none'})",
            general_status=response.general_status,
            extended_status=response.extended_status,
        )

    if response.service != (service | REPLY_FLAG):
        raise ServiceMismatchError(
            f"Expected reply service 0x{service | REPLY_FLAG:02x}, "
            f"got 0x{response.service:02x}",
            general_status=response.general_status,
            extended_status=response.extended_status,
        )
