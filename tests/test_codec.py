import unittest

from cipclient.codec import ByteReader, pack_uint8, pack_uint16, pack_uint32, pack_uint64
from cipclient.errors import DecodeError


class ByteCodecTestCase(unittest.TestCase):
    def test_values_are_packed_little_endian(self):
        self.assertEqual(pack_uint8(0xAB), b"\xab")
        self.assertEqual(pack_uint16(0x1234), b"\x34\x12")
        self.assertEqual(pack_uint32(0x12345678), b"\x78\x56\x34\x12")
        self.assertEqual(pack_uint64(0x0102030405060708), bytes(range(8, 0, -1)))

    def test_fields_are_read_in_sequence(self):
        reader = ByteReader(b"\x01\x34\x12\x78\x56\x34\x12abc")
        self.assertEqual(reader.uint8(), 1)
        self.assertEqual(reader.uint16(), 0x1234)
        self.assertEqual(reader.uint32(), 0x12345678)
        self.assertEqual(reader.offset, 7)
        self.assertEqual(reader.remaining, 3)
        self.assertEqual(reader.rest(), b"abc")
        self.assertEqual(reader.remaining, 0)

    def test_short_buffer_raises_decode_error_naming_field(self):
        reader = ByteReader(b"\x01\x02\x03")
        reader.uint16()
        with self.assertRaises(DecodeError) as cm:
            reader.uint32("serial number")
        self.assertIn("serial number", str(cm.exception))

        # A failed read does not consume anything
        self.assertEqual(reader.remaining, 1)
        self.assertEqual(reader.read(1), b"\x03")

    def test_read_past_end_raises_decode_error(self):
        reader = ByteReader(b"ab")
        with self.assertRaises(DecodeError):
            reader.read(3)
        self.assertEqual(reader.read(0), b"")


if __name__ == "__main__":
    unittest.main()
