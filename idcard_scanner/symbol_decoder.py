"""
Symbol decoders returning the raw payload bytes of a barcode.

The ID-card payload is written in a single-byte national code page, so the
bytes leave this module exactly as the decoder produced them. Three
interchangeable backends exist:

- zxing:   zxing-cpp bindings (PDF417 + matrix + common 1-D formats)
- pyzbar:  ZBar through pyzbar, a safety net for 1-D and QR symbols
- zbarimg: the ZBar command-line reader, for hosts without the bindings
"""

import functools
import logging
import operator
import os
import subprocess
import tempfile
from typing import List, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np
import zxingcpp

from .config import ScanConfig
from .models import RawDecodeResult, SymbolFormat

# Optional: ZBar shared library may be missing on the host
try:
    from pyzbar.pyzbar import decode as zbar_decode
except ImportError:
    zbar_decode = None  # type: ignore

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

FRIENDLY_FORMAT = {
    "PDF417": SymbolFormat.PDF417,
    "QRCode": SymbolFormat.QR_CODE,
    "DataMatrix": SymbolFormat.DATA_MATRIX,
    "Aztec": SymbolFormat.AZTEC,
    "Code128": SymbolFormat.CODE_128,
    "Code39": SymbolFormat.CODE_39,
    "EAN13": SymbolFormat.EAN_13,
    "EAN8": SymbolFormat.EAN_8,
    "UPCA": SymbolFormat.UPC_A,
    "UPCE": SymbolFormat.UPC_E,
    "ITF": SymbolFormat.ITF,
}

ZBAR_FRIENDLY = {
    "PDF417": SymbolFormat.PDF417,
    "QRCODE": SymbolFormat.QR_CODE,
    "CODE128": SymbolFormat.CODE_128,
    "CODE39": SymbolFormat.CODE_39,
    "EAN13": SymbolFormat.EAN_13,
    "EAN8": SymbolFormat.EAN_8,
    "UPCA": SymbolFormat.UPC_A,
    "UPCE": SymbolFormat.UPC_E,
    "I25": SymbolFormat.ITF,
}

# Stacked symbol used on ID cards first, the rest as a safety net
ZXING_FORMATS = (
    zxingcpp.BarcodeFormat.PDF417,
    zxingcpp.BarcodeFormat.QRCode,
    zxingcpp.BarcodeFormat.DataMatrix,
    zxingcpp.BarcodeFormat.Aztec,
    zxingcpp.BarcodeFormat.Code128,
    zxingcpp.BarcodeFormat.Code39,
    zxingcpp.BarcodeFormat.EAN13,
    zxingcpp.BarcodeFormat.EAN8,
    zxingcpp.BarcodeFormat.UPCA,
    zxingcpp.BarcodeFormat.UPCE,
    zxingcpp.BarcodeFormat.ITF,
)

READ_OPTIONS = (
    {"try_rotate": True, "try_downscale": True, "try_invert": True},
    # Older bindings without try_invert / try_downscale
    {"try_rotate": True},
    {},
)


class SymbolDecoder(Protocol):
    def decode(self, image: np.ndarray) -> Optional[RawDecodeResult]:
        ...


def estimate_confidence(has_text: bool, points: Sequence[Point], fmt: SymbolFormat, expected: SymbolFormat) -> int:
    """Advisory score; never used to reject a decode."""
    score = 50
    if has_text:
        score += 20
    if len(points) >= 4:
        score += 20
    if fmt == expected:
        score += 10
    return min(score, 100)


def pass_through_bytes(text: str, encoding: str = "latin-1") -> bytes:
    """Map decoded text back to one byte per code point.

    Used only when a backend offers no raw bytes; UTF-8 would break the
    one-byte-per-input-byte alignment downstream.
    """
    return text.encode(encoding, errors="replace")


def _extract_quad(position) -> List[Point]:
    """Return the symbol corners from a zxing-cpp `position`.

    Bindings differ in attribute naming, so both spellings are probed.
    """
    if position is None:
        return []
    for names in (
        ("top_left", "top_right", "bottom_right", "bottom_left"),
        ("topLeft", "topRight", "bottomRight", "bottomLeft"),
    ):
        pts: List[Point] = []
        for n in names:
            p = getattr(position, n, None)
            if p is not None and hasattr(p, "x") and hasattr(p, "y"):
                pts.append((float(p.x), float(p.y)))
        if pts:
            return pts
    return []


def _friendly_format(fmt_obj) -> SymbolFormat:
    name = getattr(fmt_obj, "name", None) or str(fmt_obj).replace("BarcodeFormat.", "")
    return FRIENDLY_FORMAT.get(name, SymbolFormat.UNKNOWN)


def _format_arguments():
    yield ZXING_FORMATS
    # Bindings before 2.3 only take a combined flag value
    yield functools.reduce(operator.or_, ZXING_FORMATS)


def _read_barcodes_with_opts(arr: np.ndarray):
    last_error: Optional[TypeError] = None
    for formats in _format_arguments():
        for opts in READ_OPTIONS:
            try:
                return zxingcpp.read_barcodes(arr, formats=formats, **opts)
            except TypeError as exc:
                last_error = exc
    raise last_error


class ZxingCppDecoder:
    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()

    def decode(self, image: np.ndarray) -> Optional[RawDecodeResult]:
        try:
            results = _read_barcodes_with_opts(np.ascontiguousarray(image))
        except Exception as exc:
            logger.debug("zxing-cpp decode failed: %s", exc)
            return None
        for r in results:
            raw = getattr(r, "bytes", None)
            text = getattr(r, "text", "") or ""
            if not raw:
                if not text:
                    continue
                raw = pass_through_bytes(text, self.config.pass_through_encoding)
            fmt = _friendly_format(r.format)
            points = _extract_quad(getattr(r, "position", None))
            return RawDecodeResult(
                raw_bytes=bytes(raw),
                symbol_format=fmt,
                locator_points=tuple(points),
                confidence=estimate_confidence(bool(text), points, fmt, self.config.expected_format),
            )
        return None


class PyzbarDecoder:
    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()

    def decode(self, image: np.ndarray) -> Optional[RawDecodeResult]:
        if zbar_decode is None:
            logger.warning("pyzbar backend selected but pyzbar/ZBar is not installed")
            return None
        gray = image
        if image.ndim == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
        try:
            decoded = zbar_decode(np.ascontiguousarray(gray))
        except Exception as exc:
            logger.debug("pyzbar decode failed: %s", exc)
            return None
        for d in decoded:
            raw = d.data or b""
            if not raw:
                continue
            fmt = ZBAR_FRIENDLY.get(d.type, SymbolFormat.UNKNOWN)
            points = [(float(p.x), float(p.y)) for p in (getattr(d, "polygon", None) or [])]
            return RawDecodeResult(
                raw_bytes=bytes(raw),
                symbol_format=fmt,
                locator_points=tuple(points),
                confidence=estimate_confidence(True, points, fmt, self.config.expected_format),
            )
        return None


class ZbarImgDecoder:
    """Decode through the `zbarimg` executable.

    `-Sbinary` asks ZBar to emit the symbol bytes without charset guessing.
    """

    NOT_FOUND_EXIT = 4

    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()
        self.executable = self.config.zbarimg_path

    def _command(self, path: str) -> List[str]:
        return [self.executable, "--quiet", "--raw", "-Sbinary", path]

    def decode(self, image: np.ndarray) -> Optional[RawDecodeResult]:
        frame = image
        if image.ndim == 3:
            frame = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
        with tempfile.NamedTemporaryFile(suffix=".png", delete=False) as tmp:
            tmp_path = tmp.name
        try:
            if not cv2.imwrite(tmp_path, frame):
                logger.debug("Could not write temporary image for zbarimg")
                return None
            try:
                proc = subprocess.run(self._command(tmp_path), capture_output=True)
            except OSError as exc:
                logger.warning("zbarimg not runnable (%s): %s", self.executable, exc)
                return None
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass

        if proc.returncode != 0:
            if proc.returncode != self.NOT_FOUND_EXIT:
                logger.debug("zbarimg failed: %s", proc.stderr.decode(errors="ignore").strip())
            return None
        raw = proc.stdout
        if raw.endswith(b"\n"):
            raw = raw[:-1]
        if not raw:
            return None
        return RawDecodeResult(
            raw_bytes=raw,
            symbol_format=SymbolFormat.UNKNOWN,
            confidence=estimate_confidence(True, [], SymbolFormat.UNKNOWN, self.config.expected_format),
        )


def make_decoder(config: ScanConfig) -> SymbolDecoder:
    backends = {
        "zxing": ZxingCppDecoder,
        "pyzbar": PyzbarDecoder,
        "zbarimg": ZbarImgDecoder,
    }
    return backends[config.decoder_backend](config)
