import asyncio
import enum
import functools
import inspect
import logging
import socket

from typing import Optional, Set, Tuple

from cipclient.errors import TransportError
from cipclient.stream.protocols.base import DEFAULT_QUEUE_SIZE, BaseStreamProtocol

logger = logging.getLogger(__name__)


class SessionStates(enum.Enum):
    Idle = 0
    Connecting = 1
    AwaitingSessionRegistration = 2
    AwaitingIdentity = 3
    Active = 4
    Disconnected = 5
    Reconnecting = 6


class StreamClient(object):
    """
    A client endpoint that maintains a single stream connection with a server.

    The endpoint owns the connection lifecycle. It opens the transport,
    tracks the protocol instance handling the connection and, when a
    reconnection interval is configured, reconnects after the connection is
    lost. Subclasses extend the ``on_peer_available``, ``on_peer_unavailable``
    and ``on_message`` methods to implement the application protocol.
    """

    # Concrete endpoint implementations must define the protocol object to
    # be instantiated to handle a connection with a peer. The protocol is
    # expected to inherit from the
    # :ref:`cipclient.stream.protocols.base.BaseStreamProtocol` interface.
    protocol_class = None

    def __init__(
        self,
        on_state_changed=None,
        reconnect_interval: float = 0.0,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        **kwargs,
    ):
        """ Initialise Endpoint

        :param on_state_changed: A callback function that will be called with
          the endpoint, the previous state and the new state whenever the
          endpoint changes state.

        :param reconnect_interval: The fixed delay, in seconds, between losing
          a connection and the next connection attempt. Attempts repeat
          without limit. A value of zero disables reconnection.

        :param queue_size: The maximum number of messages that may wait to be
          written to the transport.
        """
        if self.protocol_class is None or not issubclass(
            self.protocol_class, BaseStreamProtocol
        ):
            raise Exception(
                f"Endpoint protocol class must be a subclass of BaseStreamProtocol, got {self.protocol_class}"
            )

        if reconnect_interval < 0:
            raise ValueError(
                f"reconnect_interval must not be negative, got {reconnect_interval}"
            )

        self._on_state_changed_handler = on_state_changed
        self._reconnect_interval = reconnect_interval
        self._queue_size = queue_size

        self._state = SessionStates.Idle
        self._protocol = None  # type: Optional[BaseStreamProtocol]
        self._addr = ""
        self._port = 0
        self._family = socket.AF_INET
        self._running = False
        self._reconnect_task = None  # type: Optional[asyncio.Task]
        # Tasks running coroutine callbacks
        self._callback_tasks = set()  # type: Set[asyncio.Task]

    @property
    def state(self) -> SessionStates:
        """ Return the current state of the endpoint """
        return self._state

    @property
    def running(self) -> bool:
        """ Return the running state of the endpoint.

        A running endpoint has been started and not yet stopped. It may not
        actually be connected as it may be waiting to reconnect.
        """
        return self._running

    @property
    def connected(self) -> bool:
        return self._protocol is not None

    @property
    def raddr(self) -> Optional[Tuple[str, int]]:
        """ Return the address of the connected server """
        return self._protocol.raddr if self._protocol else None

    @property
    def reconnect_interval(self) -> float:
        return self._reconnect_interval

    async def start(self, addr: str, port: int, family: int = socket.AF_INET) -> None:
        """ Start endpoint by connecting to a server.

        :param addr: The address to connect to.

        :param port: The port to connect to.

        :param family: An optional address family integer from the socket module.
          Defaults to socket.AF_INET IPv4.

        Raises a :class:`TransportError` if the connection can not be made.
        Reconnection only applies to connections that were established.
        """
        if self.running:
            return

        logger.debug(f"Starting client for {addr}:{port}")

        self._addr = addr
        self._port = port
        self._family = family
        self._running = True

        try:
            await self._connect()
        except TransportError:
            self._running = False
            self._set_state(SessionStates.Idle)
            raise

    async def stop(self) -> None:
        """ Stop endpoint.

        Disconnect from the server and halt any further reconnection attempts.
        """
        if not self.running:
            return

        logger.debug(f"Stopping client for {self._addr}:{self._port}")

        # Prevent automatic reconnects upon disconnect
        self._running = False

        # Cancel any in-progress reconnect waits
        if self._reconnect_task:
            self._reconnect_task.cancel()
        self._reconnect_task = None

        prot = self._protocol
        if prot:
            prot.close()
            await prot.wait_closed()

        self._set_state(SessionStates.Idle)

    def send(self, data: bytes, **kwargs) -> None:
        """ Queue a message for sending to the server.

        Raises a :class:`TransportError` if there is no connection, or a
        :class:`QueueFullError` if the outbound queue is full.
        """
        if not self._protocol:
            raise TransportError("No connection to send message on")
        self._protocol.send(data, **kwargs)

    async def send_when_ready(self, data: bytes, **kwargs) -> None:
        """ Queue a message for sending, waiting for room in the outbound
        queue if necessary.
        """
        if not self._protocol:
            raise TransportError("No connection to send message on")
        await self._protocol.send_when_ready(data, **kwargs)

    def prepare_connection(self) -> None:
        """ Called before every connection attempt. Subclasses reset any per
        connection state here.
        """

    def disconnected(self, cause: Optional[Exception]) -> None:
        """ Called after a connection is lost or a connection attempt fails.

        :param cause: The exception describing why, or None if the endpoint
          was stopped locally.
        """

    def _set_state(self, state: SessionStates) -> None:
        if state == self._state:
            return

        previous = self._state
        self._state = state
        logger.debug(f"State changed from {previous.name} to {state.name}")

        self._call_handler(
            self._on_state_changed_handler, "on_state_changed", previous, state
        )

    def _call_handler(self, handler, name: str, *args) -> None:
        """ Call a user callback with the endpoint as the first argument """
        if not handler:
            return

        # Don't let poor user code break the library
        try:
            maybe_awaitable = handler(self, *args)
            if inspect.isawaitable(maybe_awaitable):
                task = asyncio.ensure_future(maybe_awaitable)
                self._callback_tasks.add(task)
                task.add_done_callback(functools.partial(self._callback_done, name))
        except Exception:
            logger.exception(f"Error in {name} callback method")

    def _callback_done(self, name: str, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.exception(f"Error in {name} callback method", exc_info=exc)

    def _protocol_factory(self):
        """ Return a protocol instance to handle a new connection """
        return self.protocol_class(
            on_message=self.on_message,
            on_peer_available=self.on_peer_available,
            on_peer_unavailable=self.on_peer_unavailable,
            queue_size=self._queue_size,
        )

    async def _connect(self) -> None:
        """ Connect the client to the server.

        Raises a :class:`TransportError` if the connection attempt fails.
        """
        self._set_state(SessionStates.Connecting)
        self.prepare_connection()

        logger.debug(f"Starting to connect to {self._addr}:{self._port}")

        loop = asyncio.get_running_loop()
        try:
            transport, _protocol = await loop.create_connection(
                self._protocol_factory,
                host=self._addr,
                port=self._port,
                family=self._family,
            )
        except OSError as exc:
            # When connecting to "localhost", some systems try to connect to
            # both 127.0.0.1 and ::1 resulting in an OSError(Multiple errors
            # occurred) that wraps two ConnectionRefusedErrors
            logger.error(f"Connection to {self._addr}:{self._port} was refused: {exc}")
            self._set_state(SessionStates.Disconnected)
            raise TransportError(
                f"Connection to {self._addr}:{self._port} failed: {exc}"
            ) from exc

        sock = transport.get_extra_info("socket")
        if sock is not None:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

    def _schedule_reconnect(self) -> None:
        """ Wait out the reconnection interval then connect again, or settle
        in the idle state if reconnection is disabled.
        """
        if self.running and self._reconnect_interval > 0:
            self._set_state(SessionStates.Reconnecting)
            logger.info(f"Attempting reconnect in {self._reconnect_interval} seconds")
            self._reconnect_task = asyncio.get_running_loop().create_task(
                self._reconnect()
            )
        else:
            self._running = False
            self._set_state(SessionStates.Idle)

    async def _reconnect(self) -> None:
        try:
            await asyncio.sleep(self._reconnect_interval)
        except asyncio.CancelledError:
            return

        self._reconnect_task = None
        try:
            await self._connect()
        except TransportError as exc:
            # Report the failed attempt and keep trying
            self.disconnected(exc)
            self._schedule_reconnect()
            return

        # The endpoint may have been stopped while the connection was opening
        if not self.running and self._protocol:
            self._protocol.close()

    def on_peer_available(self, prot, peer_id: bytes) -> None:
        """ Called from a protocol instance when its transport is available.

        :param prot: The protocol instance responsible for the connection.

        :param peer_id: The peer's unique identity.
        """
        logger.info(f"Connected to {self._addr}:{self._port}")
        self._protocol = prot

    def on_peer_unavailable(self, prot, peer_id: bytes, cause=None) -> None:
        """ Called from a protocol instance when its transport is no longer
        available. No further messages can be sent or received.

        :param prot: The protocol instance responsible for the connection.

        :param peer_id: The peer's unique identity.

        :param cause: The exception describing why the connection was lost,
          or None if it was closed locally.
        """
        if prot is self._protocol:
            self._protocol = None

        self._set_state(SessionStates.Disconnected)
        self.disconnected(cause)
        self._schedule_reconnect()

    def on_message(self, prot, peer_id: bytes, data, **kwargs) -> None:
        """ Called by a protocol when it extracts a message from the stream.

        :param prot: The protocol instance that received the message.

        :param peer_id: The peer's unique identity.

        :param data: The message extracted by the protocol.
        """
