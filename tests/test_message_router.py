import unittest

from cipclient.cip import message_router, segments
from cipclient.cip.message_router import REPLY_FLAG, RouterRequest, Service
from cipclient.errors import ProtocolError, ServiceMismatchError


class MessageRouterTestCase(unittest.TestCase):
    def test_build_request(self):
        path = segments.class_instance_path(0x01, 0x01)
        msg = message_router.build_request(Service.GetAttributeAll, path)
        self.assertEqual(msg, b"\x01\x02\x20\x01\x24\x01")

    def test_build_request_with_data(self):
        request = RouterRequest(
            Service.GetAttributeSingle,
            [segments.logical_segment(segments.LogicalType.ClassId, 0x1234)],
            b"\xaa\xbb",
        )
        self.assertEqual(
            message_router.encode_request(request),
            b"\x0e\x02\x21\x00\x34\x12\xaa\xbb",
        )

    def test_odd_path_is_rejected(self):
        with self.assertRaises(ValueError):
            message_router.build_request(Service.GetAttributeAll, [b"\x20"])

    def test_parse_response_returns_data(self):
        data = b"\x01\x00\xac\x00"
        response = message_router.parse_response(b"\x81\x00\x00\x00" + data)
        self.assertEqual(response.service, 0x81)
        self.assertEqual(response.general_status, 0)
        self.assertEqual(response.extended_status_size, 0)
        self.assertEqual(response.extended_status, b"")
        self.assertEqual(response.data, data)

    def test_parse_response_with_extended_status(self):
        response = message_router.parse_response(b"\xd2\x00\x01\x02\x04\x01\x05\x00tail")
        self.assertEqual(response.service, Service.UnconnectedSend | REPLY_FLAG)
        self.assertEqual(response.general_status, 0x01)
        self.assertEqual(response.extended_status_size, 2)
        self.assertEqual(response.extended_status, b"\x04\x01\x05\x00")
        self.assertEqual(response.data, b"tail")

    def test_truncated_response(self):
        for data in (b"", b"\x81\x00\x00", b"\x81\x00\x01\x02\x00"):
            with self.subTest(data=data):
                with self.assertRaises(ProtocolError):
                    message_router.parse_response(data)

    def test_check_response(self):
        ok = message_router.parse_response(b"\x81\x00\x00\x00")
        message_router.check_response(ok, Service.GetAttributeAll)

    def test_check_response_reports_statuses(self):
        failed = message_router.parse_response(b"\x81\x00\x08\x01\x34\x12")
        with self.assertRaises(ProtocolError) as cm:
            message_router.check_response(failed, Service.GetAttributeAll)
        self.assertEqual(cm.exception.general_status, 0x08)
        self.assertEqual(cm.exception.extended_status, b"\x34\x12")
        self.assertIn("Service not supported", str(cm.exception))

    def test_check_response_service_mismatch(self):
        other = message_router.parse_response(b"\x8e\x00\x00\x00")
        with self.assertRaises(ServiceMismatchError):
            message_router.check_response(other, Service.GetAttributeAll)

        # A request code without the reply flag is also a mismatch
        echoed = message_router.parse_response(b"\x01\x00\x00\x00")
        with self.assertRaises(ServiceMismatchError):
            message_router.check_response(echoed, Service.GetAttributeAll)


if __name__ == "__main__":
    unittest.main()
