from __future__ import annotations

import os
import unittest
from unittest import mock

from idcard_scanner.config import GenderRule, ScanConfig
from idcard_scanner.models import ConfigError, SymbolFormat


class TestScanConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = ScanConfig()
        self.assertEqual(cfg.decoder_backend, "zxing")
        self.assertEqual(cfg.pass_through_encoding, "latin-1")
        self.assertEqual(cfg.target_encoding, "cp1256")
        self.assertEqual(cfg.expected_format, SymbolFormat.PDF417)
        self.assertEqual(cfg.max_regions, 6)
        self.assertEqual(cfg.national_id_length, 11)

    def test_unknown_backend(self) -> None:
        with self.assertRaises(ConfigError):
            ScanConfig(decoder_backend="tesseract")

    def test_unknown_encoding(self) -> None:
        with self.assertRaises(ConfigError):
            ScanConfig(target_encoding="not-a-codec")

    def test_negative_limits(self) -> None:
        with self.assertRaises(ConfigError):
            ScanConfig(max_regions=-1)

    def test_from_env(self) -> None:
        env = {
            "IDSCAN_DECODER_BACKEND": "PYZBAR",
            "IDSCAN_MAX_REGIONS": "3",
            "IDSCAN_GENDER_ODD": "ذكر",
            "IDSCAN_GENDER_EVEN": "أنثى",
        }
        with mock.patch.dict(os.environ, env), mock.patch("idcard_scanner.config._load_env_chain"):
            cfg = ScanConfig.from_env()
        self.assertEqual(cfg.decoder_backend, "pyzbar")
        self.assertEqual(cfg.max_regions, 3)
        self.assertEqual(cfg.gender_rule.resolve("01234567891"), "ذكر")
        self.assertEqual(cfg.gender_rule.resolve("01234567890"), "أنثى")

    def test_from_env_overrides_win(self) -> None:
        with mock.patch.dict(os.environ, {"IDSCAN_DECODER_BACKEND": "pyzbar"}), mock.patch(
            "idcard_scanner.config._load_env_chain"
        ):
            cfg = ScanConfig.from_env(decoder_backend="zbarimg")
        self.assertEqual(cfg.decoder_backend, "zbarimg")

    def test_from_env_rejects_non_integer(self) -> None:
        with mock.patch.dict(os.environ, {"IDSCAN_MAX_REGIONS": "many"}), mock.patch(
            "idcard_scanner.config._load_env_chain"
        ):
            with self.assertRaises(ConfigError):
                ScanConfig.from_env()


class TestGenderRule(unittest.TestCase):
    def test_unknown_length_has_no_gender(self) -> None:
        self.assertIsNone(GenderRule().resolve("123456"))

    def test_custom_digit_positions(self) -> None:
        rule = GenderRule(digit_index={6: 0})
        self.assertEqual(rule.resolve("300000"), "male")
        self.assertEqual(rule.resolve("400000"), "female")


if __name__ == "__main__":
    unittest.main()
