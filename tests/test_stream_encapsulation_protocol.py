import logging
import struct
import unittest
import unittest.mock

from cipclient import encapsulation
from cipclient.encapsulation import HEADER_FORMAT, Command
from cipclient.errors import FramingError
from cipclient.stream.protocols.encapsulation import (
    EncapsulationStreamProtocol,
    FrameDecoder,
)


def create_frame(command: int = Command.SendRRData, data: bytes = b"", context: int = 0) -> bytes:
    return encapsulation.encode_frame(command, data, session=0x1234, context=context)


class FrameDecoderTestCase(unittest.TestCase):
    def feed_all(self, decoder, chunks):
        frames = []
        for chunk in chunks:
            decoder.feed(chunk, frames.append)
        return frames

    def test_single_frame(self):
        msg = create_frame(data=b"Hello World", context=42)
        frames = self.feed_all(FrameDecoder(), [msg])
        self.assertEqual(len(frames), 1)
        self.assertEqual(frames[0], encapsulation.decode_frame(msg))
        self.assertEqual(frames[0].data, b"Hello World")
        self.assertEqual(frames[0].context, 42)

    def test_frame_split_at_any_boundary(self):
        msg = create_frame(data=b"Hello World")
        expected = self.feed_all(FrameDecoder(), [msg])

        for split in range(1, len(msg)):
            with self.subTest(split=split):
                decoder = FrameDecoder()
                frames = self.feed_all(decoder, [msg[:split], msg[split:]])
                self.assertEqual(frames, expected)
                self.assertEqual(decoder.buffered, 0)

    def test_concatenated_frames_are_decoded_in_order(self):
        first = create_frame(data=b"first", context=1)
        second = create_frame(Command.RegisterSession, b"\x01\x00\x00\x00", context=2)
        frames = self.feed_all(FrameDecoder(), [first + second])
        self.assertEqual(len(frames), 2)
        self.assertEqual(frames[0].context, 1)
        self.assertEqual(frames[0].data, b"first")
        self.assertEqual(frames[1].command, Command.RegisterSession)
        self.assertEqual(frames[1].context, 2)

    def test_tail_and_head_in_one_chunk(self):
        first = create_frame(data=b"first", context=1)
        second = create_frame(data=b"second", context=2)
        stream = first + second
        decoder = FrameDecoder()

        frames = self.feed_all(decoder, [stream[:20], stream[20:40], stream[40:]])
        self.assertEqual([f.context for f in frames], [1, 2])

    def test_message_received_in_worst_case_delivery_scenario(self):
        msg = create_frame(data=b"Hello World")
        decoder = FrameDecoder()
        handler = unittest.mock.Mock()

        # Send the test message 1 byte at a time
        for b in msg:
            decoder.feed([b], handler)

        self.assertEqual(handler.call_count, 1)

    def test_zero_length_payload(self):
        frames = self.feed_all(FrameDecoder(), [create_frame(Command.UnRegisterSession)])
        self.assertEqual(len(frames), 1)
        self.assertEqual(frames[0].data, b"")

    def test_each_frame_is_handled_before_the_next_is_decoded(self):
        decoder = FrameDecoder()
        seen = []

        def handler(frame):
            # The second frame is still waiting in the buffer
            seen.append((frame.context, decoder.buffered))

        decoder.feed(create_frame(context=1) + create_frame(context=2), handler)
        self.assertEqual(seen, [(1, 24), (2, 0)])

    def test_invalid_length_raises_framing_error_and_clears_buffer(self):
        header = struct.pack(HEADER_FORMAT, Command.SendRRData, 0xFFFF, 0, 0, 0, 0)
        decoder = FrameDecoder()
        with self.assertRaises(FramingError):
            decoder.feed(header, unittest.mock.Mock())
        self.assertEqual(decoder.buffered, 0)

    def test_reset_discards_partial_frame(self):
        msg = create_frame(data=b"Hello World", context=9)
        decoder = FrameDecoder()
        handler = unittest.mock.Mock()
        decoder.feed(msg[:30], handler)
        self.assertEqual(decoder.buffered, 30)

        decoder.reset()
        self.assertEqual(decoder.buffered, 0)

        decoder.feed(msg, handler)
        self.assertEqual(handler.call_count, 1)
        self.assertEqual(handler.call_args[0][0].context, 9)


class EncapsulationStreamProtocolTestCase(unittest.TestCase):
    def test_frames_are_passed_to_message_handler(self):
        on_message_mock = unittest.mock.Mock()
        p = EncapsulationStreamProtocol(on_message=on_message_mock)

        p.data_received(create_frame(data=b"abc") + create_frame(data=b"def"))

        self.assertEqual(on_message_mock.call_count, 2)
        _prot, _peer_id, frame = on_message_mock.call_args[0]
        self.assertIs(_prot, p)
        self.assertEqual(frame.data, b"def")

    def test_framing_error_closes_connection_with_cause(self):
        on_message_mock = unittest.mock.Mock()
        p = EncapsulationStreamProtocol(on_message=on_message_mock)
        p.transport = unittest.mock.Mock()

        header = struct.pack(HEADER_FORMAT, Command.SendRRData, 0xFFFF, 0, 0, 0, 0)
        with self.assertLogs(
            "cipclient.stream.protocols.encapsulation", level=logging.ERROR
        ) as log:
            p.data_received(header)
        self.assertIn("Disconnecting peer", log.output[0])

        self.assertFalse(on_message_mock.called)
        self.assertTrue(p.transport.close.called)
        self.assertTrue(p.closing)
        self.assertIsInstance(p._close_cause, FramingError)

    def test_frames_after_close_are_discarded(self):
        def on_message(prot, peer_id, frame):
            prot.close(cause=RuntimeError("stop"))

        on_message_mock = unittest.mock.Mock(side_effect=on_message)
        p = EncapsulationStreamProtocol(on_message=on_message_mock)
        p.transport = unittest.mock.Mock()

        p.data_received(create_frame() + create_frame())
        self.assertEqual(on_message_mock.call_count, 1)

    def test_message_handler_errors_are_logged(self):
        on_message_mock = unittest.mock.Mock(side_effect=Exception("Boom"))
        p = EncapsulationStreamProtocol(on_message=on_message_mock)

        with self.assertLogs(
            "cipclient.stream.protocols.encapsulation", level=logging.ERROR
        ) as log:
            p.data_received(create_frame())
        self.assertIn("Error in on_message callback method", log.output[0])


if __name__ == "__main__":
    unittest.main()
