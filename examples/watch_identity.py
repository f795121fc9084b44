import asyncio
import logging
from cipclient.errors import CipClientError
from cipclient.session import PlcSession
from cipclient.stream.endpoint import SessionStates


if __name__ == "__main__":

    import argparse

    parser = argparse.ArgumentParser(description="Controller Identity Watch Example")
    parser.add_argument(
        "--host",
        metavar="<host>",
        type=str,
        default="localhost",
        help="The address of the EtherNet/IP communications module",
    )
    parser.add_argument(
        "--slot",
        metavar="<slot>",
        type=int,
        default=0,
        help="The backplane slot of the controller",
    )
    parser.add_argument(
        "--interval",
        metavar="<seconds>",
        type=float,
        default=5.0,
        help="Seconds between identity reads",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "error"],
        default="error",
        help="Logging level. Default is 'error'.",
    )

    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s.%(msecs)03.0f [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        level=getattr(logging, args.log_level.upper()),
    )

    def on_state_changed(session: PlcSession, previous, state):
        print(f"Session moved from {previous.name} to {state.name}")

    def on_disconnected(session: PlcSession, cause):
        print(f"Session lost: {cause}")

    def on_attribute(session: PlcSession, controller, error):
        if error:
            print(f"Identity could not be decoded: {error}")
        else:
            print(f"Controller in slot {session.slot}: {controller}")

    async def poll(session: PlcSession):
        await session.connect()
        while session.running:
            await asyncio.sleep(args.interval)
            # Re-read the identity while the session is usable
            if session.state == SessionStates.Active:
                try:
                    session.read_identity()
                except CipClientError as exc:
                    print(f"Skipping identity read: {exc}")

    session = PlcSession(
        args.host,
        slot=args.slot,
        reconnect_interval=2.0,
        on_state_changed=on_state_changed,
        on_disconnected=on_disconnected,
        on_attribute=on_attribute,
    )

    try:
        asyncio.run(poll(session))
    except KeyboardInterrupt:
        pass
