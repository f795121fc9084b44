import contextlib
import io
import logging
import unittest

from cipclient import __version__, cli
from cipclient.session import ENIP_PORT

from plc_sim import PlcSimulator


class CliArgumentsTestCase(unittest.TestCase):
    def test_defaults(self):
        args = cli.parse_args(["10.0.0.5"])
        self.assertEqual(args.host, "10.0.0.5")
        self.assertEqual(args.port, ENIP_PORT)
        self.assertEqual(args.slot, 0)
        self.assertEqual(args.reconnect_interval, 0.0)
        self.assertFalse(args.watch)
        self.assertEqual(args.log_level, "error")

    def test_options(self):
        args = cli.parse_args(
            ["10.0.0.5", "--port", "2222", "--slot", "4", "--watch", "--log-level", "debug"]
        )
        self.assertEqual(args.port, 2222)
        self.assertEqual(args.slot, 4)
        self.assertTrue(args.watch)
        self.assertEqual(args.log_level, "debug")

    def test_version(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            with self.assertRaises(SystemExit):
                cli.parse_args(["--version"])
        self.assertIn(__version__, out.getvalue())


class CliReadIdentityTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.sim = PlcSimulator()
        await self.sim.start()

    async def asyncTearDown(self):
        await self.sim.stop()

    async def test_prints_identity(self):
        args = cli.parse_args(["127.0.0.1", "--port", str(self.sim.port), "--slot", "2"])

        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            status = await cli.read_identity(args)

        self.assertEqual(status, 0)
        self.assertIn("ABCDE v14.1", out.getvalue())
        self.assertIn("serial=0x00000014", out.getvalue())
        self.assertEqual(self.sim.forwarded[0][:2], b"\x01\x02")

    async def test_reports_failed_request(self):
        self.sim.general_status = 0x08
        args = cli.parse_args(["127.0.0.1", "--port", str(self.sim.port)])

        out = io.StringIO()
        with self.assertLogs("cipclient", level=logging.ERROR):
            with contextlib.redirect_stdout(out):
                status = await cli.read_identity(args)

        self.assertEqual(status, 1)
        self.assertIn("Disconnected:", out.getvalue())

    async def test_reports_connection_failure(self):
        port = self.sim.port
        await self.sim.stop()
        args = cli.parse_args(["127.0.0.1", "--port", str(port)])

        out = io.StringIO()
        with self.assertLogs("cipclient.stream.endpoint", level=logging.ERROR):
            with contextlib.redirect_stdout(out):
                status = await cli.read_identity(args)

        self.assertEqual(status, 1)
        self.assertIn("Unable to connect", out.getvalue())
