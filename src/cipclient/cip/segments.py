"""
Path segments address objects inside a device (logical segments) and hops
across a backplane or network (port segments). Each builder is a pure
function returning the encoded bytes.
"""
import enum
import struct

from typing import Sequence


PORT_SEGMENT = 0x00
LOGICAL_SEGMENT = 0x20

# Port segment flag set when the link address is longer than one byte
EXTENDED_LINK_ADDRESS = 0x10

BACKPLANE_PORT = 1


class LogicalType(enum.IntEnum):
    ClassId = 0x00
    InstanceId = 0x04
    MemberId = 0x08
    ConnectionPoint = 0x0C
    AttributeId = 0x10
    Special = 0x14
    ServiceId = 0x18


class LogicalFormat(enum.IntEnum):
    Bits8 = 0x00
    Bits16 = 0x01
    Bits32 = 0x02


def port_segment(port: int, link: bytes) -> bytes:
    """ Return a port segment routing out of ``port`` to the ``link`` address.

    :param port: The port number to leave the device through. Values below
      15 are encoded in the segment header, larger ports use an extended
      16-bit port field.

    :param link: The link address on that port, e.g. the slot number of a
      module in a chassis.
    """
    link = bytes(link)
    header = PORT_SEGMENT
    body = b""

    if len(link) > 1:
        header |= EXTENDED_LINK_ADDRESS
        body += struct.pack("<B", len(link))

    if port < 15:
        header |= port
    else:
        header |= 0x0F
        body += struct.pack("<H", port)

    segment = struct.pack("<B", header) + body + link
    if len(segment) % 2:
        segment += b"\x00"
    return segment


def backplane_route(slot: int) -> bytes:
    """ Return the route to a module in ``slot`` of the local chassis """
    return port_segment(BACKPLANE_PORT, bytes([slot]))


def logical_segment(logical_type: int, value: int, padded: bool = True) -> bytes:
    """ Return a logical segment selecting ``value`` of the given type.

    The smallest of the 8, 16 and 32-bit formats that holds the value is
    used. In the padded path format a pad byte follows the header of 16 and
    32-bit segments.
    """
    if value < 0 or value > 0xFFFFFFFF:
        raise ValueError(f"Logical segment value out of range: {value}")

    if value <= 0xFF:
        fmt, body = LogicalFormat.Bits8, struct.pack("<B", value)
    elif value <= 0xFFFF:
        fmt, body = LogicalFormat.Bits16, struct.pack("<H", value)
    else:
        fmt, body = LogicalFormat.Bits32, struct.pack("<I", value)

    header = struct.pack("<B", LOGICAL_SEGMENT | logical_type | fmt)
    if padded and fmt != LogicalFormat.Bits8:
        header += b"\x00"
    return header + body


def class_instance_path(class_id: int, instance_id: int) -> Sequence[bytes]:
    return [
        logical_segment(LogicalType.ClassId, class_id),
        logical_segment(LogicalType.InstanceId, instance_id),
    ]
