import re
import unittest

import cipclient


class VersionTestCase(unittest.TestCase):
    def test_version(self):
        """ check cipclient exposes a release version string """
        self.assertIsInstance(cipclient.__version__, str)
        self.assertRegex(cipclient.__version__, re.compile(r"^\d+\.\d+\.\d+"))


if __name__ == "__main__":
    unittest.main()
