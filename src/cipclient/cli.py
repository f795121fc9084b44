"""
Command line entry point that reads and prints the identity of a controller.

.. code-block:: console

    $ cip-identity 192.168.1.10 --slot 2
    $ cip-identity 192.168.1.10 --watch --reconnect-interval 5

In watch mode the session stays connected, reconnecting as needed, until
SIGINT or SIGTERM is received.
"""
import argparse
import asyncio
import logging

from signal import SIGINT, SIGTERM

from cipclient import __version__
from cipclient.errors import TransportError
from cipclient.session import ENIP_PORT, PlcSession

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Read the identity of a controller over EtherNet/IP"
    )
    parser.add_argument(
        "host", metavar="<host>", type=str, help="The EtherNet/IP module address"
    )
    parser.add_argument(
        "--port",
        metavar="<port>",
        type=int,
        default=ENIP_PORT,
        help=f"The encapsulation port. Default is {ENIP_PORT}.",
    )
    parser.add_argument(
        "--slot",
        metavar="<slot>",
        type=int,
        default=0,
        help="The backplane slot of the controller. Default is 0.",
    )
    parser.add_argument(
        "--reconnect-interval",
        metavar="<seconds>",
        type=float,
        default=0.0,
        help="Seconds to wait before reconnecting. Default is 0 (disabled).",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Stay connected and report every identity read until interrupted",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "error"],
        default="error",
        help="Logging level. Default is 'error'.",
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser.parse_args(argv)


async def read_identity(args: argparse.Namespace) -> int:
    """ Connect, wait for the identity (or forever when watching) and
    return the process exit status.
    """
    loop = asyncio.get_running_loop()
    finished = loop.create_future()

    def finish(status: int):
        if not finished.done():
            finished.set_result(status)

    def on_attribute(session: PlcSession, controller, error):
        if error is not None:
            print(f"Unable to decode identity: {error}")
        else:
            print(
                f"{controller.product_name} v{controller.version} "
                f"vendor={controller.vendor_id} product=0x{controller.product_code:x} "
                f"serial=0x{controller.serial_number:08x}"
            )
        if not args.watch:
            finish(0 if error is None else 1)

    def on_disconnected(session: PlcSession, cause):
        if cause is not None:
            print(f"Disconnected: {cause}")
        if cause is not None and session.reconnect_interval == 0:
            finish(1)

    def signal_handler(sig):
        logger.info(f"Caught {sig.name}, stopping.")
        finish(0)

    loop.add_signal_handler(SIGINT, signal_handler, SIGINT)
    loop.add_signal_handler(SIGTERM, signal_handler, SIGTERM)

    session = PlcSession(
        args.host,
        slot=args.slot,
        port=args.port,
        reconnect_interval=args.reconnect_interval,
        on_attribute=on_attribute,
        on_disconnected=on_disconnected,
    )

    try:
        try:
            await session.connect()
        except TransportError as exc:
            print(f"Unable to connect to {args.host}:{args.port}: {exc}")
            return 1

        return await finished
    finally:
        await session.disconnect()
        loop.remove_signal_handler(SIGINT)
        loop.remove_signal_handler(SIGTERM)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s.%(msecs)03.0f [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        level=getattr(logging, args.log_level.upper()),
    )

    return asyncio.run(read_identity(args))


if __name__ == "__main__":
    raise SystemExit(main())
