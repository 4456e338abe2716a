from __future__ import annotations

import threading
import unittest
from typing import Optional

import cv2
import numpy as np
import zxingcpp

from idcard_scanner.models import NO_DATA, RawDecodeResult, SymbolFormat
from idcard_scanner.pipeline import IdCardScanner

PAYLOAD = "أحمد#الحلبي#محمد#فاطمة#دمشق 20-7-2003#01234567890#".encode("cp1256") + bytes(range(200, 232))


class AlwaysDecoder:
    def __init__(self, payload: Optional[bytes]):
        self.payload = payload

    def decode(self, image: np.ndarray) -> Optional[RawDecodeResult]:
        if self.payload is None:
            return None
        return RawDecodeResult(raw_bytes=self.payload, symbol_format=SymbolFormat.PDF417, confidence=70)


def _image() -> np.ndarray:
    return np.zeros((120, 160, 3), dtype=np.uint8)


class TestIdCardScanner(unittest.TestCase):
    def test_scan_produces_identity_record(self) -> None:
        scanner = IdCardScanner(decoder=AlwaysDecoder(PAYLOAD))
        result = scanner.scan(_image())
        self.assertTrue(result.found)
        self.assertEqual(result.decode.raw_bytes, PAYLOAD)
        record = result.record
        self.assertTrue(record.is_valid)
        self.assertEqual(record.first_name, "أحمد")
        self.assertEqual(record.gender, "female")
        labels = [a.label for a in record.annotations(6)]
        self.assertIn("possible hash", labels)
        self.assertIn("likely encrypted/random", labels)

    def test_no_barcode_gives_no_data(self) -> None:
        result = IdCardScanner(decoder=AlwaysDecoder(None)).scan(_image())
        self.assertFalse(result.found)
        self.assertIs(result.record, NO_DATA)

    def test_submit_runs_on_worker_thread(self) -> None:
        with IdCardScanner(decoder=AlwaysDecoder(PAYLOAD)) as scanner:
            future = scanner.submit(_image())
            result = future.result(timeout=30)
        self.assertTrue(result.record.is_valid)

    def test_cancelled_scan(self) -> None:
        cancel = threading.Event()
        cancel.set()
        result = IdCardScanner(decoder=AlwaysDecoder(PAYLOAD)).scan(_image(), cancel=cancel)
        self.assertFalse(result.found)



def _render_pdf417(payload: bytes, scale: int = 3) -> np.ndarray:
    """Print `payload` as a PDF417 symbol centred on a white RGB card."""
    barcode = zxingcpp.create_barcode(payload, zxingcpp.BarcodeFormat.PDF417)
    if hasattr(barcode, "to_image"):
        symbol = np.asarray(barcode.to_image(), dtype=np.uint8)
    else:
        symbol = np.asarray(zxingcpp.write_barcode_to_image(barcode), dtype=np.uint8)
    if symbol.ndim == 3:
        symbol = cv2.cvtColor(symbol, cv2.COLOR_RGB2GRAY)
    symbol = cv2.resize(symbol, None, fx=scale, fy=scale, interpolation=cv2.INTER_NEAREST)
    h, w = symbol.shape
    card = np.full((h + 240, w + 240, 3), 255, dtype=np.uint8)
    card[120 : 120 + h, 120 : 120 + w] = symbol[:, :, None]
    return card


@unittest.skipUnless(hasattr(zxingcpp, "create_barcode"), "zxing-cpp build without a barcode writer")
class TestPrintedSymbol(unittest.TestCase):
    def test_cp1256_payload_survives_the_real_decoder(self) -> None:
        payload = "أحمد#الحلبي#محمد#فاطمة#دمشق 20-7-2003#01234567891".encode("cp1256")
        result = IdCardScanner().scan(_render_pdf417(payload))
        self.assertTrue(result.found)
        self.assertEqual(result.decode.raw_bytes, payload)
        self.assertEqual(result.decode.symbol_format, SymbolFormat.PDF417)
        self.assertEqual(len(result.decode.locator_points), 4)
        record = result.record
        self.assertTrue(record.is_valid)
        self.assertEqual(record.first_name, "أحمد")
        self.assertEqual(record.birth_place, "دمشق")
        self.assertEqual(record.gender, "male")

if __name__ == "__main__":
    unittest.main()
