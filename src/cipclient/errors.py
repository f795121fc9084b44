"""
Exceptions raised by the client.

Every failure that ends a session is reported to the ``on_disconnected``
callback as one of these exception instances so that callers can tell a
remote rejection apart from a transport failure or a graceful close.
"""


class CipClientError(Exception):
    """ Base class for all client errors """


class TransportError(CipClientError):
    """ A connect, read or write on the TCP transport failed """


class ConnectionClosed(TransportError):
    """ The remote end closed the stream """


class QueueFullError(TransportError):
    """ The outbound queue has no room for another frame """


class FramingError(CipClientError):
    """ An encapsulation header could not be parsed """


class DecodeError(CipClientError):
    """ A buffer was too short for the fields being decoded """


class SessionUnregistered(CipClientError):
    """ The remote sent an UnRegisterSession command """


class ProtocolError(CipClientError):
    """
    The remote sent something that is not a valid reply to the request in
    flight. The general and extended status values, when the remote supplied
    them, are kept verbatim.
    """

    def __init__(
        self, message: str, general_status: int = None, extended_status: bytes = b""
    ):
        super().__init__(message)
        self.general_status = general_status
        self.extended_status = extended_status


class ContainerParseError(ProtocolError):
    """ A common packet format container was malformed """


class ServiceMismatchError(ProtocolError):
    """ A reply carried a service code that does not match the request """


class EncapsulationStatusError(ProtocolError):
    """ An encapsulation reply carried a non-zero status """

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status
