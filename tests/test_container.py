import unittest

from cipclient.cip import container
from cipclient.cip.container import ContainerItem, ItemType
from cipclient.errors import ContainerParseError, ProtocolError


class ContainerTestCase(unittest.TestCase):
    def test_items_are_returned_in_order(self):
        items = [
            container.item(ItemType.NullAddress),
            container.item(ItemType.UnconnectedData, b"\x81\x00\x00\x00data"),
            container.item(0x8000, b"\x01" * 16),
        ]
        parsed = container.parse_container(container.build_container(items))
        self.assertEqual(parsed, items)
        self.assertEqual(
            [i.type_id for i in parsed],
            [ItemType.NullAddress, ItemType.UnconnectedData, 0x8000],
        )
        self.assertEqual([i.length for i in parsed], [0, 8, 16])

    def test_unconnected_container_layout(self):
        encoded = container.unconnected_container(b"\x01\x02\x03")
        self.assertEqual(
            encoded,
            b"\x02\x00"  # item count
            b"\x00\x00\x00\x00"  # null address item
            b"\xb2\x00\x03\x00\x01\x02\x03",  # unconnected data item
        )

    def test_empty_container(self):
        self.assertEqual(container.parse_container(b"\x00\x00"), [])

    def test_item_length_exceeding_buffer(self):
        encoded = b"\x01\x00\xb2\x00\x10\x00abc"
        with self.assertRaises(ContainerParseError) as cm:
            container.parse_container(encoded)
        self.assertIn("item 0 data", str(cm.exception))

        # Container errors are protocol errors
        self.assertIsInstance(cm.exception, ProtocolError)

    def test_item_count_exceeding_buffer(self):
        encoded = b"\x05\x00\x00\x00\x00\x00"
        with self.assertRaises(ContainerParseError):
            container.parse_container(encoded)

    def test_truncated_item_header(self):
        encoded = b"\x02\x00\x00\x00\x00\x00\xb2\x00\x02"
        with self.assertRaises(ContainerParseError):
            container.parse_container(encoded)

    def test_missing_item_count(self):
        with self.assertRaises(ContainerParseError):
            container.parse_container(b"\x01")

    def test_item_helper_sets_length(self):
        self.assertEqual(
            container.item(ItemType.ConnectedData, b"ab"),
            ContainerItem(ItemType.ConnectedData, 2, b"ab"),
        )


if __name__ == "__main__":
    unittest.main()
