from __future__ import annotations

import contextlib
import io
import json
import os
import tempfile
import unittest
import zipfile
from unittest import mock

import numpy as np
from PIL import Image

from idcard_scanner import cli, image_io
from idcard_scanner.field_parser import FieldParser
from idcard_scanner.image_io import discover_images, is_card_image, load_image
from idcard_scanner.models import ImageLoadError, NO_DATA, RawDecodeResult, SymbolFormat
from idcard_scanner.pipeline import ScanResult

PAYLOAD = "أحمد#الحلبي#محمد#فاطمة#دمشق 20-7-2003#01234567891".encode("cp1256")


def _write_png(path: str, width: int = 40, height: int = 30) -> None:
    Image.new("RGB", (width, height), (255, 255, 255)).save(path, format="PNG")


class TestImageIO(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = self._tmp.name

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_load_image_returns_rgb_array(self) -> None:
        path = os.path.join(self.root, "card.png")
        _write_png(path)
        arr = load_image(path)
        self.assertEqual(arr.shape, (30, 40, 3))
        self.assertEqual(arr.dtype, np.uint8)

    def test_unreadable_image_raises(self) -> None:
        path = os.path.join(self.root, "broken.jpg")
        with open(path, "wb") as f:
            f.write(b"not an image")
        with self.assertRaises(ImageLoadError):
            load_image(path)

    def test_discover_folder_skips_hidden_and_other_files(self) -> None:
        for name in ("b.png", "a.jpg", ".hidden.png"):
            _write_png(os.path.join(self.root, name))
        with open(os.path.join(self.root, "notes.txt"), "w") as f:
            f.write("not a card")
        found = [os.path.basename(p) for p in discover_images(self.root)]
        self.assertEqual(found, ["a.jpg", "b.png"])

    def test_discover_zip(self) -> None:
        img = os.path.join(self.root, "front.png")
        _write_png(img)
        archive = os.path.join(self.root, "cards.zip")
        with zipfile.ZipFile(archive, "w") as zf:
            zf.write(img, "scans/front.png")
            zf.writestr("__MACOSX/scans/._front.png", b"meta")
        found = discover_images(archive)
        self.assertEqual([os.path.basename(p) for p in found], ["front.png"])

    def test_discover_missing_path(self) -> None:
        with self.assertRaises(FileNotFoundError):
            discover_images(os.path.join(self.root, "missing"))

    def test_heic_without_any_decoder_is_a_load_error(self) -> None:
        path = os.path.join(self.root, "card.heic")
        with open(path, "wb") as f:
            f.write(b"not a heic photo")
        with mock.patch.object(image_io.sys, "platform", "linux"):
            with self.assertRaises(ImageLoadError):
                load_image(path)

    def test_card_image_names(self) -> None:
        self.assertTrue(is_card_image("scans/front.JPG"))
        self.assertFalse(is_card_image("scans/.front.jpg"))
        self.assertFalse(is_card_image("__MACOSX/scans/front.jpg"))
        self.assertFalse(is_card_image("notes.txt"))

    def test_zip_extracts_only_card_images(self) -> None:
        archive = os.path.join(self.root, "mixed.zip")
        img = os.path.join(self.root, "back.png")
        _write_png(img)
        with zipfile.ZipFile(archive, "w") as zf:
            zf.write(img, "b/back.png")
            zf.writestr("b/readme.txt", b"hello")
        found = discover_images(archive)
        self.assertEqual(len(found), 1)
        folder = os.path.dirname(found[0])
        self.assertEqual(os.listdir(folder), ["back.png"])


class FakeScanner:
    def __init__(self, *args, **kwargs):
        pass

    def scan(self, image):
        decoded = RawDecodeResult(
            raw_bytes=PAYLOAD, symbol_format=SymbolFormat.PDF417, confidence=90, detection_method="full-image"
        )
        return ScanResult(record=FieldParser().parse_payload(PAYLOAD), decode=decoded)


class EmptyScanner(FakeScanner):
    def scan(self, image):
        return ScanResult(record=NO_DATA)


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.image = os.path.join(self._tmp.name, "card.png")
        _write_png(self.image)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _run(self, scanner_cls, *extra):
        out = io.StringIO()
        with mock.patch.object(cli, "IdCardScanner", scanner_cls), mock.patch(
            "idcard_scanner.config._load_env_chain"
        ), contextlib.redirect_stdout(out), contextlib.redirect_stderr(io.StringIO()):
            code = cli.main(["--src", self.image, *extra])
        return code, out.getvalue()

    def test_prints_json_record(self) -> None:
        code, out = self._run(FakeScanner, "--raw")
        self.assertEqual(code, 0)
        payload = json.loads(out.strip().splitlines()[0])
        self.assertTrue(payload["found"])
        self.assertEqual(payload["symbol_format"], "PDF417")
        self.assertEqual(payload["raw_hex"], PAYLOAD.hex())
        self.assertEqual(payload["record"]["first_name"], "أحمد")
        self.assertEqual(payload["record"]["date_of_birth"], "2003-07-20")
        self.assertEqual(payload["record"]["gender"], "male")

    def test_nothing_decoded_exits_nonzero(self) -> None:
        code, out = self._run(EmptyScanner)
        self.assertEqual(code, 1)
        payload = json.loads(out.strip())
        self.assertFalse(payload["found"])
        self.assertFalse(payload["record"]["valid"])

    def test_missing_source_exits_with_message(self) -> None:
        missing = os.path.join(self._tmp.name, "nowhere")
        with mock.patch("idcard_scanner.config._load_env_chain"):
            with self.assertRaises(SystemExit) as ctx:
                cli.main(["--src", missing])
        self.assertIn("Source path not found", str(ctx.exception.code))


if __name__ == "__main__":
    unittest.main()
