"""
Decode cascade - first success wins.

Strategy:
1. Candidate regions (largest first), each as-is then rotated 90/180/270
2. Whole frame, for when region search under- or over-segments
3. Inverted whole frame, for reversed-polarity prints

Every failure just advances the cascade; only exhaustion is reported, as
`None`. A missing barcode is a common, expected outcome.
"""

import logging
import threading
from typing import Iterator, Optional, Tuple

import cv2
import numpy as np

from .models import RawDecodeResult, Region
from .region_finder import RegionCandidateFinder
from .symbol_decoder import SymbolDecoder

logger = logging.getLogger(__name__)

ROTATIONS = (
    (90, cv2.ROTATE_90_CLOCKWISE),
    (180, cv2.ROTATE_180),
    (270, cv2.ROTATE_90_COUNTERCLOCKWISE),
)


class DecodeOrchestrator:
    def __init__(self, finder: RegionCandidateFinder, decoder: SymbolDecoder):
        self.finder = finder
        self.decoder = decoder

    def run(self, image: np.ndarray, cancel: Optional[threading.Event] = None) -> Optional[RawDecodeResult]:
        if image is None or image.size == 0:
            return None

        regions = self.finder.find(image)
        for index, region in enumerate(regions):
            if _cancelled(cancel):
                return None
            roi = region.crop(image)
            for method, variant in _region_variants(roi, index, region):
                result = self._attempt(variant, method)
                if result is not None:
                    return result

        if _cancelled(cancel):
            return None
        logger.info("Attempting fallback: decode full image")
        result = self._attempt(image, "full-image")
        if result is not None:
            return result

        if _cancelled(cancel):
            return None
        result = self._attempt(cv2.bitwise_not(image), "inverted-full-image")
        if result is not None:
            return result

        logger.info("No barcode found after %d region(s) and full-frame fallbacks", len(regions))
        return None

    def _attempt(self, image: np.ndarray, method: str) -> Optional[RawDecodeResult]:
        try:
            result = self.decoder.decode(image)
        except Exception as exc:
            # Backends report absence as None; anything raised is treated the same
            logger.debug("Decode attempt %s raised: %s", method, exc)
            return None
        if result is None or not result.raw_bytes:
            logger.debug("Decode attempt %s: nothing found", method)
            return None
        logger.info("Decoded %d byte(s) via %s (%s)", len(result.raw_bytes), method, result.symbol_format.value)
        return result.with_method(method)


def _region_variants(roi: np.ndarray, index: int, region: Region) -> Iterator[Tuple[str, np.ndarray]]:
    # Rotated copies are built only when the previous variant failed
    tag = f"region-{index} ({region.x},{region.y},{region.width}x{region.height})"
    yield tag, roi
    for angle, flag in ROTATIONS:
        yield f"{tag} rot{angle}", cv2.rotate(roi, flag)


def _cancelled(cancel: Optional[threading.Event]) -> bool:
    if cancel is not None and cancel.is_set():
        logger.info("Decode cancelled between cascade stages")
        return True
    return False

