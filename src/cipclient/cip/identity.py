"""
Decoding of the Identity object (class 0x01) Get Attribute All reply.

.. code-block:: console

    +--------+-------------+--------------+-------+-------+--------+--------+----------+--------+
    | Vendor | Device_Type | Product_Code | Major | Minor | Status | Serial | Name_Len | Name   |
    | uint16 |   uint16    |    uint16    | uint8 | uint8 | uint16 | uint32 |  uint8   | ...    |
    +--------+-------------+--------------+-------+-------+--------+--------+----------+--------+
"""
from cipclient.cip import message_router, segments
from cipclient.codec import ByteReader


IDENTITY_CLASS = 0x01
IDENTITY_INSTANCE = 0x01

IDENTITY_PATH = segments.class_instance_path(IDENTITY_CLASS, IDENTITY_INSTANCE)


class ControllerIdentity(object):
    """ The identity of a controller as reported by its Identity object.

    A new record holds zero values until an identity reply is applied.
    """

    def __init__(
        self,
        vendor_id: int = 0,
        device_type: int = 0,
        product_code: int = 0,
        major_revision: int = 0,
        minor_revision: int = 0,
        status: int = 0,
        serial_number: int = 0,
        product_name: str = "",
    ):
        self.vendor_id = vendor_id
        self.device_type = device_type
        self.product_code = product_code
        self.major_revision = major_revision
        self.minor_revision = minor_revision
        self.status = status
        self.serial_number = serial_number
        self.product_name = product_name

    @property
    def version(self) -> str:
        return f"{self.major_revision}.{self.minor_revision}"

    def update(self, other: "ControllerIdentity") -> None:
        """ Copy every field of another record into this one """
        self.__dict__.update(other.__dict__)

    def __eq__(self, other):
        if not isinstance(other, ControllerIdentity):
            return NotImplemented
        return self.__dict__ == other.__dict__

    def __repr__(self):
        return (
            f"ControllerIdentity(vendor_id={self.vendor_id}, "
            f"device_type=0x{self.device_type:x}, "
            f"product_code=0x{self.product_code:x}, version={self.version}, "
            f"status=0x{self.status:04x}, serial_number=0x{self.serial_number:08x}, "
            f"product_name={self.product_name!r})"
        )


def request() -> bytes:
    """ Return the Get Attribute All request for the Identity object """
    return message_router.build_request(
        message_router.Service.GetAttributeAll, IDENTITY_PATH
    )


def decode(data: bytes) -> ControllerIdentity:
    """ Decode a Get Attribute All reply from the Identity object.

    Raises a :class:`DecodeError` if any field, including the product name,
    runs past the end of the buffer.
    """
    reader = ByteReader(data)
    identity = ControllerIdentity(
        vendor_id=reader.uint16("vendor id"),
        device_type=reader.uint16("device type"),
        product_code=reader.uint16("product code"),
        major_revision=reader.uint8("major revision"),
        minor_revision=reader.uint8("minor revision"),
        status=reader.uint16("status"),
        serial_number=reader.uint32("serial number"),
    )
    name_length = reader.uint8("product name length")
    identity.product_name = reader.read(name_length, "product name").decode(
        "latin-1"
    )
    return identity
