"""
A PLC session connects to an EtherNet/IP device, registers an encapsulation
session and reads the identity of the controller in a given slot of the
chassis by sending an Unconnected Send request across the backplane.

The session moves through the following states::

    Idle -> Connecting -> AwaitingSessionRegistration -> AwaitingIdentity
         -> Active -> Disconnected -> (Reconnecting -> Connecting | Idle)

All protocol state is changed from the protocol's ``data_received`` path on
the event loop, so no locking is needed.
"""
import logging
import random
import socket

from typing import Optional

from cipclient import encapsulation
from cipclient.cip import container, identity, message_router, segments, unconnected_send
from cipclient.cip.identity import ControllerIdentity
from cipclient.encapsulation import Command, EncapsulationFrame
from cipclient.errors import (
    CipClientError,
    ConnectionClosed,
    ContainerParseError,
    DecodeError,
    EncapsulationStatusError,
    ProtocolError,
    SessionUnregistered,
    TransportError,
)
from cipclient.stream.endpoint import SessionStates, StreamClient
from cipclient.stream.protocols.base import DEFAULT_QUEUE_SIZE
from cipclient.stream.protocols.encapsulation import EncapsulationStreamProtocol


logger = logging.getLogger(__name__)


ENIP_PORT = 44818


class PlcSession(StreamClient):
    """
    A client session with a controller reached through an EtherNet/IP
    communications module.

    Users of a session pass callback functions to receive notifications of
    session events. Every callback receives the session as its first argument
    and is called from the event loop as soon as the event is processed.
    Exceptions raised by callbacks are logged and otherwise ignored.
    """

    protocol_class = EncapsulationStreamProtocol

    def __init__(
        self,
        host: str,
        slot: int = 0,
        port: int = ENIP_PORT,
        reconnect_interval: float = 0.0,
        on_connected=None,
        on_disconnected=None,
        on_registered=None,
        on_attribute=None,
        on_response=None,
        on_state_changed=None,
        rng: random.Random = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        rr_timeout: int = encapsulation.DEFAULT_RR_TIMEOUT,
        unconnected_send_timeout: int = unconnected_send.DEFAULT_TIMEOUT,
        family: int = socket.AF_INET,
    ):
        """ Initialise a session

        :param host: The address of the EtherNet/IP communications module.

        :param slot: The backplane slot of the controller to query.

        :param port: The encapsulation TCP port. Defaults to 44818.

        :param reconnect_interval: The fixed delay, in seconds, before
          reconnecting after the session is lost. Zero disables reconnection.

        :param on_connected: A callback called when the TCP connection has
          been made, before the session is registered.

        :param on_disconnected: A callback called with the cause whenever the
          session is lost or a reconnection attempt fails. The cause is a
          :class:`CipClientError` instance, or None if the session was closed
          locally with ``disconnect``.

        :param on_registered: A callback called once the remote has assigned
          a session handle.

        :param on_attribute: A callback called with the controller identity
          and an error once an identity reply has been processed. On success
          the error is None. When the reply could not be decoded the identity
          is None and the error is the :class:`DecodeError`.

        :param on_response: A callback called with the
          :class:`RouterResponse` of a successful request made through
          ``send_unconnected``.

        :param on_state_changed: A callback called with the previous and new
          state on every state change.

        :param rng: The random source used to choose the correlation context
          of each connection. A private ``random.Random`` is created if not
          supplied.

        :param queue_size: The maximum number of frames waiting to be written.

        :param rr_timeout: The timeout, in seconds, placed in SendRRData
          requests.

        :param unconnected_send_timeout: The time, in milliseconds, the
          communications module waits for the controller to reply to a
          forwarded request.
        """
        super().__init__(
            on_state_changed=on_state_changed,
            reconnect_interval=reconnect_interval,
            queue_size=queue_size,
        )
        self.host = host
        self.port = port
        self.slot = slot
        self.family = family
        self.route = segments.backplane_route(slot)

        self._on_connected_handler = on_connected
        self._on_disconnected_handler = on_disconnected
        self._on_registered_handler = on_registered
        self._on_attribute_handler = on_attribute
        self._on_response_handler = on_response

        self._rng = rng or random.Random()
        self._rr_timeout = rr_timeout
        self._unconnected_send_timeout = unconnected_send_timeout

        self.context = 0
        self.session_handle = 0
        self.controller = ControllerIdentity()

        # (service, reply handler) of the request awaiting a reply
        self._pending = None

    async def connect(self) -> None:
        """ Connect to the device and begin registering a session.

        Raises a :class:`TransportError` if the connection can not be made.
        """
        await self.start(self.host, self.port, family=self.family)

    async def disconnect(self) -> None:
        """ Unregister the session, close the connection and stop any
        reconnection attempts.
        """
        prot = self._protocol
        if prot and self.session_handle:
            logger.info(f"Unregistering session 0x{self.session_handle:08x}")
            try:
                prot.send(encapsulation.unregister_session(self.context, self.session_handle))
                await prot.flush()
            except TransportError as exc:
                logger.error(f"Unable to unregister session: {exc}")

        await self.stop()

    def read_identity(self) -> None:
        """ Request the identity of the controller """
        logger.debug(f"Reading identity of controller in slot {self.slot}")
        self._send_request(
            identity.request(), message_router.Service.GetAttributeAll, self._handle_identity
        )

    def send_unconnected(self, request: bytes) -> None:
        """ Forward an encoded message router request to the controller.

        A successful reply is passed to the ``on_response`` callback.
        """
        if not request:
            raise ValueError("request must contain a service code")
        self._send_request(bytes(request), request[0], self._handle_response)

    def prepare_connection(self) -> None:
        # A fresh correlation context for every connection attempt
        self.context = self._rng.getrandbits(64)
        self.session_handle = 0
        self._pending = None
        logger.debug(f"Correlation context 0x{self.context:016x}")

    def disconnected(self, cause: Optional[Exception]) -> None:
        self.session_handle = 0
        self._pending = None

        if cause is None:
            logger.info("PLC disconnected")
        elif isinstance(cause, (ConnectionClosed, SessionUnregistered)):
            logger.info(f"PLC disconnected: {cause}")
        else:
            logger.error(f"PLC disconnected: {cause}")

        self._call_handler(self._on_disconnected_handler, "on_disconnected", cause)

    def on_peer_available(self, prot, peer_id: bytes) -> None:
        super().on_peer_available(prot, peer_id)
        self._set_state(SessionStates.AwaitingSessionRegistration)
        self._call_handler(self._on_connected_handler, "on_connected")

        logger.info("Registering session")
        try:
            self.send(encapsulation.register_session(self.context))
        except TransportError as exc:
            prot.close(cause=exc)

    def on_message(self, prot, peer_id: bytes, data, **kwargs) -> None:
        """ Dispatch an encapsulation frame received from the device.

        Any protocol failure is fatal for the session: the connection is
        closed with the error as the cause.
        """
        try:
            self._dispatch(data)
        except CipClientError as exc:
            logger.error(f"Closing session: {exc}")
            prot.close(cause=exc)

    def _dispatch(self, frame: EncapsulationFrame) -> None:
        if frame.command == Command.RegisterSession:
            self._handle_register_session(frame)
        elif frame.command == Command.UnRegisterSession:
            raise SessionUnregistered("Remote unregistered the session")
        elif frame.command == Command.SendRRData:
            self._handle_rr_data(frame)
        else:
            logger.debug(f"Ignoring encapsulation command 0x{frame.command:04x}")

    def _check_frame(self, frame: EncapsulationFrame) -> None:
        if frame.status != 0:
            raise EncapsulationStatusError(
                f"Command 0x{frame.command:04x} failed: "
                f"{encapsulation.describe_status(frame.status)}",
                frame.status,
            )
        if frame.context != self.context:
            raise ProtocolError(
                f"Reply context 0x{frame.context:016x} does not match "
                f"0x{self.context:016x}"
            )

    def _handle_register_session(self, frame: EncapsulationFrame) -> None:
        self._check_frame(frame)

        if self.state != SessionStates.AwaitingSessionRegistration:
            logger.warning(f"Ignoring RegisterSession reply in state {self.state.name}")
            return

        self.session_handle = frame.session
        logger.info(f"Registered session 0x{self.session_handle:08x}")

        self._set_state(SessionStates.AwaitingIdentity)
        self._call_handler(self._on_registered_handler, "on_registered")
        self.read_identity()

    def _handle_rr_data(self, frame: EncapsulationFrame) -> None:
        self._check_frame(frame)

        items = container.parse_container(encapsulation.rr_data_container(frame.data))
        if len(items) < 2:
            raise ContainerParseError(
                f"SendRRData reply holds {len(items)} items, expected an address "
                f"item and a data item"
            )
        response = message_router.parse_response(items[1].data)

        if self._pending is None:
            logger.warning(f"Ignoring unsolicited reply for service 0x{response.service:02x}")
            return

        service, handler = self._pending
        self._pending = None
        message_router.check_response(response, service)
        handler(response)

    def _send_request(self, request: bytes, service: int, handler) -> None:
        if not self.session_handle:
            raise CipClientError("Session is not registered")
        if self._pending is not None:
            raise CipClientError(
                f"A request for service 0x{self._pending[0]:02x} is still in flight"
            )

        payload = unconnected_send.build(
            request, self.route, timeout=self._unconnected_send_timeout
        )
        frame = encapsulation.send_rr_data(
            self.context,
            self.session_handle,
            container.unconnected_container(payload),
            timeout=self._rr_timeout,
        )
        self.send(frame)
        self._pending = (service, handler)

    def _handle_identity(self, response: message_router.RouterResponse) -> None:
        try:
            controller = identity.decode(response.data)
        except DecodeError as exc:
            self._call_handler(self._on_attribute_handler, "on_attribute", None, exc)
            raise

        self.controller.update(controller)
        logger.info(f"Controller identity: {self.controller}")

        self._set_state(SessionStates.Active)
        self._call_handler(
            self._on_attribute_handler, "on_attribute", self.controller, None
        )

    def _handle_response(self, response: message_router.RouterResponse) -> None:
        self._call_handler(self._on_response_handler, "on_response", response)
