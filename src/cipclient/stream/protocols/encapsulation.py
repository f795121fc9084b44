import enum
import logging

from cipclient.encapsulation import (
    HEADER_SIZE,
    EncapsulationFrame,
    decode_header,
)
from cipclient.errors import FramingError

from .base import BaseStreamProtocol

logger = logging.getLogger(__name__)


class ProtocolStates(enum.Enum):
    WAIT_HEADER = 0
    WAIT_PAYLOAD = 1


class FrameDecoder(object):
    """
    Reassemble encapsulation messages from a stream of byte chunks.

    Chunks may hold a partial message, exactly one message or several
    messages back to back. Bytes are buffered across calls to ``feed`` until
    a complete message is available.
    """

    def __init__(self):
        self._buffer = bytearray()
        self._state = ProtocolStates.WAIT_HEADER
        self._header = None

    @property
    def buffered(self) -> int:
        """ Return the number of bytes waiting for the rest of a message """
        return len(self._buffer)

    def reset(self):
        """ Discard any partially received message """
        self._buffer = bytearray()
        self._state = ProtocolStates.WAIT_HEADER
        self._header = None

    def feed(self, data, handler) -> None:
        """ Add some bytes to the buffer and pass each complete message to
        the handler.

        The handler is called synchronously for each message, in stream
        order, before any further bytes are examined.

        Raises a :class:`FramingError` if a header can not be parsed. The
        buffer is discarded in that case as the stream can not be
        resynchronised.
        """
        self._buffer.extend(data)

        # There could be one byte or multiple messages in the buffer. Process
        # all messages in the buffer.
        while self._buffer:
            if self._state == ProtocolStates.WAIT_HEADER:
                if len(self._buffer) >= HEADER_SIZE:
                    try:
                        self._header = decode_header(self._buffer)
                    except FramingError:
                        self.reset()
                        raise
                    self._state = ProtocolStates.WAIT_PAYLOAD
                else:
                    # There is not enough bytes to extract the header yet.
                    break

            elif self._state == ProtocolStates.WAIT_PAYLOAD:
                command, length, session, status, context, options = self._header
                eom = HEADER_SIZE + length
                if len(self._buffer) >= eom:
                    data = bytes(self._buffer[HEADER_SIZE:eom])
                    del self._buffer[:eom]
                    self._state = ProtocolStates.WAIT_HEADER
                    self._header = None

                    handler(
                        EncapsulationFrame(
                            command, length, session, status, context, options, data
                        )
                    )
                else:
                    # There is not enough bytes to extract the payload yet.
                    break


class EncapsulationStreamProtocol(BaseStreamProtocol):
    """
    The encapsulation protocol extracts EtherNet/IP encapsulation messages
    from the stream. Each message starts with a fixed 24 byte header whose
    length field gives the size of the payload that follows.

    Upon extracting a message from the stream the protocol passes the decoded
    :class:`EncapsulationFrame` to the on_message handler.

    A stream that can not be framed is closed with the
    :class:`FramingError` as the cause.
    """

    def __init__(
        self,
        on_message=None,
        on_peer_available=None,
        on_peer_unavailable=None,
        **kwargs,
    ):
        super().__init__(
            on_message=on_message,
            on_peer_available=on_peer_available,
            on_peer_unavailable=on_peer_unavailable,
            **kwargs,
        )
        self._decoder = FrameDecoder()

    def connection_made(self, transport):
        # Nothing from a previous connection may be reinterpreted
        self._decoder.reset()
        super().connection_made(transport)

    def data_received(self, data):
        """ Process some bytes received from the transport.

        This method supports receiving a byte at a time, however, a more
        likely scenario is receiving one or more messages at once.
        """
        try:
            self._decoder.feed(data, self._on_frame)
        except FramingError as exc:
            logger.error(f"{exc}. Disconnecting peer {self._identity}.")
            self.close(cause=exc)

    def _on_frame(self, frame: EncapsulationFrame):
        if self.closing:
            logger.debug(f"Discarding frame received while closing: {frame.command}")
            return

        logger.debug(
            f"Received frame command=0x{frame.command:04x}, length={frame.length}, "
            f"session=0x{frame.session:08x}, status=0x{frame.status:08x}"
        )

        # Don't let user code break the library
        try:
            if self._on_message_handler:
                self._on_message_handler(self, self._identity, frame)
        except Exception:
            logger.exception("Error in on_message callback method")
