import asyncio
import binascii
import logging
import os

from typing import Optional, Tuple

from cipclient.errors import ConnectionClosed, QueueFullError, TransportError


logger = logging.getLogger(__name__)


# The number of outbound messages that may wait for the writer task
DEFAULT_QUEUE_SIZE = 32


class BaseStreamProtocol(asyncio.Protocol):
    """
    This class implements the minimum interface expected by a StreamClient.

    Received bytes are passed straight to the message handler callback.
    Subclasses that need to extract atomic messages from the stream override
    ``data_received``.

    Outbound messages are placed on a bounded queue and written to the
    transport by a writer task that lives exactly as long as the connection.
    The writer honours the transport's flow control so producers are never
    blocked by socket write latency.
    """

    def __init__(
        self,
        on_message=None,
        on_peer_available=None,
        on_peer_unavailable=None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        **kwargs,
    ):
        """

        :param on_message: A callback function that will be passed each message
          that the protocol extracts from the stream.

        :param on_peer_available: A callback function that will be called when
          the protocol is connected with a transport. In this state the protocol
          can send and receive messages.

        :param on_peer_unavailable: A callback function that will be called when
          the protocol has lost the connection with its transport. It is passed
          the cause of the disconnection.

        :param queue_size: The maximum number of messages waiting to be
          written to the transport.
        """
        self._on_message_handler = on_message
        self._on_peer_available_handler = on_peer_available
        self._on_peer_unavailable_handler = on_peer_unavailable
        self._queue_size = queue_size
        self._remote_address = None  # type: Optional[Tuple[str, int]]
        self._local_address = None  # type: Optional[Tuple[str, int]]
        self._identity = b""

        self._queue = None  # type: Optional[asyncio.Queue]
        self._writer_task = None  # type: Optional[asyncio.Task]
        self._can_write = None  # type: Optional[asyncio.Event]
        self._closed = None  # type: Optional[asyncio.Future]
        self._close_requested = False
        self._close_cause = None

        self.transport = None

    @property
    def raddr(self) -> Tuple[str, int]:
        """ Return the remote address the protocol is connected with """
        return self._remote_address

    @property
    def laddr(self) -> Tuple[str, int]:
        """ Return the local address the protocol is using """
        return self._local_address

    @property
    def identity(self):
        """ Return the protocol's unique identifier """
        return self._identity

    @property
    def closing(self) -> bool:
        """ Return True once a close has been requested """
        return self._close_requested

    def connection_made(self, transport):
        """
        Called by the event loop when the protocol is connected with a transport.
        """
        self.transport = transport

        # AF_INET6 returns a four-tuple (host, port, flowinfo, scopeid) which
        # needs to be converted to the expected 2-tuple.
        def get_host_port(info) -> Tuple[str, int]:
            if info and len(info) == 4:
                host, port, _flowinfo, _scopeid = info
                info = (host, port)
            return info

        self._remote_address = get_host_port(transport.get_extra_info("peername"))
        self._local_address = get_host_port(transport.get_extra_info("sockname"))
        self._identity = binascii.hexlify(os.urandom(5))

        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._can_write = asyncio.Event()
        self._can_write.set()
        self._closed = loop.create_future()
        self._writer_task = loop.create_task(self._writer())

        logger.debug(
            f"Connection made. id={self._identity}, "
            f"laddr={self._local_address}, "
            f"raddr={self._remote_address}"
        )

        # Don't let user code break the library
        try:
            if self._on_peer_available_handler:
                self._on_peer_available_handler(self, self._identity)
        except Exception:
            logger.exception("Error in on_peer_available callback method")

    def connection_lost(self, exc):
        """
        Called by the event loop when the protocol is disconnected from a transport.
        """
        if self._close_requested:
            cause = self._close_cause
        elif exc is not None:
            cause = TransportError(f"Connection lost: {exc}")
            cause.__cause__ = exc
        else:
            cause = ConnectionClosed("Connection closed by peer")

        logger.debug(
            f"Connection lost. id={self._identity}, "
            f"laddr={self._local_address}, "
            f"raddr={self._remote_address}, "
            f"reason={cause!r}"
        )

        # The writer must not outlive the connection
        if self._writer_task:
            self._writer_task.cancel()
        self._writer_task = None

        # Don't let user code break the library
        try:
            if self._on_peer_unavailable_handler:
                self._on_peer_unavailable_handler(self, self._identity, cause)
        except Exception:
            logger.exception("Error in on_peer_unavailable callback method")

        if self.transport:
            self.transport.close()

        if self._closed and not self._closed.done():
            self._closed.set_result(cause)

        self.transport = None
        self._remote_address = None
        self._local_address = None
        self._identity = None

    def pause_writing(self):
        if self._can_write:
            self._can_write.clear()

    def resume_writing(self):
        if self._can_write:
            self._can_write.set()

    def close(self, cause: Exception = None):
        """
        Close this connection.

        :param cause: The reason for closing, reported to the
          ``on_peer_unavailable`` callback. None means a locally requested
          close.
        """
        logger.debug(
            f"Closing connection. id={self._identity}, "
            f"laddr={self._local_address}, raddr={self._remote_address}"
        )

        if not self._close_requested:
            self._close_requested = True
            self._close_cause = cause

        if self.transport:
            self.transport.close()

    async def wait_closed(self):
        """ Wait until the connection has been lost """
        if self._closed is not None:
            await asyncio.shield(self._closed)

    def send(self, data: bytes, **kwargs):
        """ Queue a message for the writer task.

        :param data: a bytes object containing the message.

        Raises a :class:`QueueFullError` if the outbound queue is full.
        """
        if not isinstance(data, bytes):
            logger.error(f"data must be bytes - can't send message. data={type(data)}")
            return

        self._check_connected()
        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            raise QueueFullError(
                f"Outbound queue is full ({self._queue_size} messages)"
            ) from None

    async def send_when_ready(self, data: bytes, **kwargs):
        """ Queue a message for the writer task, waiting for room in the
        outbound queue if it is full.

        :param data: a bytes object containing the message.
        """
        if not isinstance(data, bytes):
            logger.error(f"data must be bytes - can't send message. data={type(data)}")
            return

        self._check_connected()
        await self._queue.put(data)

    async def flush(self):
        """ Wait until every queued message has been handed to the transport """
        if self._queue is None or self._writer_task is None:
            return

        # Stop waiting if the connection is lost before the queue drains
        join_task = asyncio.ensure_future(self._queue.join())
        await asyncio.wait(
            {join_task, self._closed}, return_when=asyncio.FIRST_COMPLETED
        )
        if not join_task.done():
            join_task.cancel()

    def _check_connected(self):
        if self._queue is None or self.transport is None or self._close_requested:
            raise TransportError("Protocol is not connected")

    async def _writer(self):
        """ Drain the outbound queue into the transport """
        while True:
            data = await self._queue.get()
            try:
                await self._can_write.wait()
                if self.transport is None or self.transport.is_closing():
                    logger.debug(f"Dropping {len(data)} byte msg, transport is closing")
                    continue
                logger.debug(f"Sending msg with {len(data)} bytes")
                self.transport.write(data)
            finally:
                self._queue.task_done()

    def data_received(self, data):
        """ Process some bytes received from the transport."""
        # Don't let user code break the library
        try:
            if self._on_message_handler:
                self._on_message_handler(self, self._identity, data)
        except Exception:
            logger.exception("Error in on_message callback method")
