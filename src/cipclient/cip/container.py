"""
The common packet format (CPF) container carries an ordered list of typed
items. Each item has a small header giving its type and data length.

.. code-block:: console

    +------------+---------+--------+--------+---------+--------+-----
    | Item_Count | Type_Id | Length | Data   | Type_Id | Length | ...
    |   uint16   | uint16  | uint16 | ...    | uint16  | uint16 |
    +------------+---------+--------+--------+---------+--------+-----

A SendRRData reply holds an address item followed by the data item that
carries the message router reply.
"""
import enum
import logging
import struct

from collections import namedtuple
from typing import List, Sequence

from cipclient.codec import ByteReader, pack_uint16
from cipclient.errors import ContainerParseError, DecodeError


logger = logging.getLogger(__name__)


ITEM_HEADER_FORMAT = "<HH"
ITEM_HEADER_SIZE = struct.calcsize(ITEM_HEADER_FORMAT)


class ItemType(enum.IntEnum):
    NullAddress = 0x0000
    ListIdentity = 0x000C
    ConnectedAddress = 0x00A1
    ConnectedData = 0x00B1
    UnconnectedData = 0x00B2
    ListServices = 0x0100
    SockaddrOriginatorToTarget = 0x8000
    SockaddrTargetToOriginator = 0x8001
    SequencedAddress = 0x8002


ContainerItem = namedtuple("ContainerItem", ("type_id", "length", "data"))


def item(type_id: int, data: bytes = b"") -> ContainerItem:
    """ Return a container item whose length matches its data """
    return ContainerItem(type_id, len(data), bytes(data))


def build_container(items: Sequence[ContainerItem]) -> bytes:
    """ Encode a sequence of items as a container """
    encoded = [pack_uint16(len(items))]
    for _item in items:
        encoded.append(struct.pack(ITEM_HEADER_FORMAT, _item.type_id, len(_item.data)))
        encoded.append(bytes(_item.data))
    return b"".join(encoded)


def unconnected_container(data: bytes) -> bytes:
    """ Return the container used to carry an unconnected request: a null
    address item followed by an unconnected data item.
    """
    return build_container(
        [item(ItemType.NullAddress), item(ItemType.UnconnectedData, data)]
    )


def parse_container(data: bytes) -> List[ContainerItem]:
    """ Decode a container into its ordered list of items.

    Raises a :class:`ContainerParseError` if the item count or any item
    header declares more bytes than the buffer holds.
    """
    reader = ByteReader(data)
    try:
        count = reader.uint16("item count")
    except DecodeError as exc:
        raise ContainerParseError(f"Malformed container: {exc}") from None

    if count * ITEM_HEADER_SIZE > reader.remaining:
        raise ContainerParseError(
            f"Container declares {count} items but only {reader.remaining} "
            f"bytes follow the item count"
        )

    items = []
    for index in range(count):
        try:
            type_id = reader.uint16(f"item {index} type id")
            length = reader.uint16(f"item {index} length")
            item_data = reader.read(length, f"item {index} data")
        except DecodeError as exc:
            raise ContainerParseError(f"Malformed container: {exc}") from None
        items.append(ContainerItem(type_id, length, item_data))

    if reader.remaining:
        logger.debug(f"Ignoring {reader.remaining} bytes trailing the container")

    return items
