import os
import tempfile
import unittest
from unittest.mock import patch

from common.config.secrets import get_secret, redact

class TestSecrets(unittest.TestCase):

    def test_get_secret_from_file(self):
        with tempfile.TemporaryDirectory() as secrets_dir:
            with open(os.path.join(secrets_dir, "KAFKA_SASL_PASSWORD"), "w") as f:
                f.write("file_secret_value\n")
            with patch.dict(os.environ, {"KAFKA_SASL_PASSWORD": "env_value"}):
                val = get_secret("KAFKA_SASL_PASSWORD", secrets_dir=secrets_dir)
        self.assertEqual(val, "file_secret_value")

    @patch("os.path.exists", return_value=False)
    @patch.dict(os.environ, {"MY_SECRET": "env_secret_value"})
    def test_get_secret_from_env(self, mock_exists):
        self.assertEqual(get_secret("MY_SECRET"), "env_secret_value")

    @patch("os.path.exists", return_value=False)
    @patch.dict(os.environ, {}, clear=True)
    def test_get_secret_default(self, mock_exists):
        self.assertEqual(get_secret("MISSING_SECRET", default="fallback"), "fallback")
        self.assertIsNone(get_secret("MISSING_SECRET"))

    @patch("os.path.exists", return_value=False)
    @patch.dict(os.environ, {}, clear=True)
    def test_get_secret_missing_required(self, mock_exists):
        with self.assertRaises(RuntimeError):
            get_secret("MISSING_SECRET", required=True)

    def test_redact(self):
        self.assertEqual(redact("123456"), "12***6")
        self.assertEqual(redact("123"), "***")
        self.assertEqual(redact(None), "<None>")

if __name__ == "__main__":
    unittest.main()
