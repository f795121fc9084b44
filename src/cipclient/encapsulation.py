"""
The encapsulation layer wraps every message exchanged with an EtherNet/IP
device in a fixed 24 byte header. The ``Length`` field only counts the
payload that follows the header.

.. code-block:: console

    +---------+--------+---------+--------+---------+---------+-----------+
    | Command | Length | Session | Status | Context | Options |  payload  |
    | uint16  | uint16 | uint32  | uint32 | uint64  | uint32  |  ....     |
    +---------+--------+---------+--------+---------+---------+-----------+

All integers are little-endian. The options field is always zero on send.
"""
import enum
import logging
import struct

from collections import namedtuple

from cipclient.codec import pack_uint16, pack_uint32
from cipclient.errors import ContainerParseError, FramingError


logger = logging.getLogger(__name__)


HEADER_FORMAT = "<HHIIQI"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

# The largest payload an encapsulation message may carry
MAX_PAYLOAD_SIZE = 65511

PROTOCOL_VERSION = 1

# Default timeout, in seconds, placed in a SendRRData request
DEFAULT_RR_TIMEOUT = 10


class Command(enum.IntEnum):
    Nop = 0x0000
    ListServices = 0x0004
    ListIdentity = 0x0063
    ListInterfaces = 0x0064
    RegisterSession = 0x0065
    UnRegisterSession = 0x0066
    SendRRData = 0x006F
    SendUnitData = 0x0070
    IndicateStatus = 0x0072
    Cancel = 0x0073


STATUS_DESCRIPTIONS = {
    0x0000: "Success",
    0x0001: "Invalid or unsupported command",
    0x0002: "Insufficient memory in receiver",
    0x0003: "Poorly formed or incorrect data",
    0x0064: "Invalid session handle",
    0x0065: "Invalid message length",
    0x0069: "Unsupported encapsulation protocol revision",
}


def describe_status(status: int) -> str:
    return STATUS_DESCRIPTIONS.get(status, f"Unknown status 0x{status:04x}")


EncapsulationFrame = namedtuple(
    "EncapsulationFrame",
    ("command", "length", "session", "status", "context", "options", "data"),
)


def encode_frame(
    command: int,
    data: bytes = b"",
    session: int = 0,
    context: int = 0,
    status: int = 0,
    options: int = 0,
) -> bytes:
    """ Return a complete encapsulation message.

    :param command: The encapsulation command code.

    :param data: The command specific payload.

    :param session: The session handle. Zero until a session is registered.

    :param context: The 64-bit correlation context echoed back by the remote.
    """
    if len(data) > MAX_PAYLOAD_SIZE:
        raise FramingError(
            f"Payload size ({len(data)}) exceeds maximum of {MAX_PAYLOAD_SIZE}"
        )
    header = struct.pack(
        HEADER_FORMAT, command, len(data), session, status, context, options
    )
    return header + bytes(data)


def decode_header(header: bytes) -> tuple:
    """ Return the header fields as (command, length, session, status,
    context, options).
    """
    if len(header) < HEADER_SIZE:
        raise FramingError(
            f"Encapsulation header needs {HEADER_SIZE} bytes, got {len(header)}"
        )
    fields = struct.unpack(HEADER_FORMAT, bytes(header[:HEADER_SIZE]))
    length = fields[1]
    if length > MAX_PAYLOAD_SIZE:
        raise FramingError(
            f"Payload length ({length}) exceeds maximum of {MAX_PAYLOAD_SIZE}"
        )
    return fields


def decode_frame(msg: bytes) -> EncapsulationFrame:
    """ Decode one complete encapsulation message.

    The length field must match the number of payload bytes present.
    """
    command, length, session, status, context, options = decode_header(msg)
    data = bytes(msg[HEADER_SIZE:])
    if len(data) != length:
        raise FramingError(
            f"Length field ({length}) does not match payload size ({len(data)})"
        )
    return EncapsulationFrame(command, length, session, status, context, options, data)


def register_session(context: int) -> bytes:
    """ Build a RegisterSession request. """
    data = pack_uint16(PROTOCOL_VERSION) + pack_uint16(0)
    return encode_frame(Command.RegisterSession, data, session=0, context=context)


def unregister_session(context: int, session: int) -> bytes:
    """ Build an UnRegisterSession request. It carries no payload. """
    return encode_frame(Command.UnRegisterSession, session=session, context=context)


def send_rr_data(
    context: int, session: int, container: bytes, timeout: int = DEFAULT_RR_TIMEOUT
) -> bytes:
    """ Build a SendRRData request.

    :param container: An encoded common packet format container holding the
      address and data items.

    :param timeout: The operation timeout, in seconds, the remote should
      apply. Zero leaves the timeout to the encapsulated protocol.
    """
    data = pack_uint32(0) + pack_uint16(timeout) + bytes(container)
    return encode_frame(Command.SendRRData, data, session=session, context=context)


def rr_data_container(data: bytes) -> bytes:
    """ Return the container portion of a SendRRData payload, skipping the
    interface handle and timeout fields.
    """
    if len(data) < 6:
        raise ContainerParseError(f"SendRRData payload too short ({len(data)} bytes)")
    return bytes(data[6:])
