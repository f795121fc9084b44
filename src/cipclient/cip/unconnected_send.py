"""
The Unconnected Send service asks the Connection Manager of the device we
are connected to to forward an embedded request along a route path, e.g.
across the backplane to the controller in a given slot.

.. code-block:: console

    +-----------+-------+--------------+-------------+-----+-----------+----------+--------------+
    | Time_Tick | Ticks | Message_Size | Message ... | Pad | Path_Size | Reserved | Route_Path   |
    |   uint8   | uint8 |    uint16    |             | 0/1 | uint8 (w) |  uint8   | segments     |
    +-----------+-------+--------------+-------------+-----+-----------+----------+--------------+

The pad byte is only present when the embedded message has an odd length.
"""
import logging

from typing import Sequence, Tuple

from cipclient.cip import message_router, segments
from cipclient.codec import pack_uint8, pack_uint16


logger = logging.getLogger(__name__)


CONNECTION_MANAGER_CLASS = 0x06
CONNECTION_MANAGER_INSTANCE = 0x01

CONNECTION_MANAGER_PATH = segments.class_instance_path(
    CONNECTION_MANAGER_CLASS, CONNECTION_MANAGER_INSTANCE
)

# Default time the forwarding device waits for the target, in milliseconds
DEFAULT_TIMEOUT = 2000

MAX_TICKS = 255
MAX_TIME_TICK = 15


def encode_timeout(timeout: int) -> Tuple[int, int]:
    """ Convert a timeout in milliseconds into a (time_tick, ticks) pair.

    The actual timeout is ``ticks * 2 ** time_tick`` milliseconds. The
    smallest time tick that lets the tick count fit in a byte is chosen.
    """
    if timeout < 0:
        raise ValueError(f"Timeout must not be negative, got {timeout}")

    for time_tick in range(MAX_TIME_TICK + 1):
        ticks = timeout >> time_tick
        if ticks <= MAX_TICKS:
            return time_tick, ticks

    return MAX_TIME_TICK, MAX_TICKS


def build(
    message: bytes,
    route: bytes,
    timeout: int = DEFAULT_TIMEOUT,
    path: Sequence[bytes] = CONNECTION_MANAGER_PATH,
) -> bytes:
    """ Wrap an encoded message router request in an Unconnected Send request.

    :param message: The encoded request to forward.

    :param route: The encoded route path segments leading to the target.

    :param timeout: The time, in milliseconds, the forwarding device should
      wait for the target to reply.

    :param path: The path to the object performing the forwarding.
    """
    route = bytes(route)
    if len(route) % 2:
        raise ValueError(f"Route path size ({len(route)} bytes) must be a whole number of words")

    time_tick, ticks = encode_timeout(timeout)

    data = pack_uint8(time_tick) + pack_uint8(ticks) + pack_uint16(len(message)) + bytes(message)
    if len(message) % 2:
        data += b"\x00"
    data += pack_uint8(len(route) // 2) + b"\x00" + route

    logger.debug(
        f"Unconnected send of {len(message)} byte request, route={route.hex()}, "
        f"time_tick={time_tick}, ticks={ticks}"
    )

    return message_router.build_request(
        message_router.Service.UnconnectedSend, path, data
    )
