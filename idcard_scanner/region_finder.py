"""
Candidate region search for stacked/2-D barcodes on ID-card photos.

Fine vertical bar structure survives a horizontal gradient, and a wide closing
kernel fuses the bars of a PDF417 symbol into a single blob whose bounding
box is a good first guess for the decoder.
"""

import hashlib
import logging
import os
from collections import OrderedDict
from typing import List, Optional

import cv2
import numpy as np

from .models import Region

logger = logging.getLogger(__name__)

MIN_SIDE = 20
MIN_AREA_RATIO = 0.0005
MIN_ASPECT = 0.3
MAX_ASPECT = 1.2
PAD_RATIO = 0.15
CLOSE_KERNEL = (21, 7)


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)


class RegionCandidateFinder:
    def __init__(self, max_regions: int = 6, cache_size: int = 0, debug_dir: Optional[str] = None):
        self.max_regions = max_regions
        self.cache_size = cache_size
        self.debug_dir = debug_dir
        self._cache: "OrderedDict[str, List[Region]]" = OrderedDict()

    def find(self, image: np.ndarray) -> List[Region]:
        """Return padded candidate regions, largest area first.

        An empty list means "no obvious region"; callers fall back to
        decoding the whole frame.
        """
        if image is None or image.size == 0:
            return []
        key = self._cache_key(image)
        if key is not None and key in self._cache:
            self._cache.move_to_end(key)
            return list(self._cache[key])

        regions = self._locate(image)
        logger.info("Found %d candidate region(s)", len(regions))

        if key is not None:
            self._cache[key] = regions
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return list(regions)

    def _cache_key(self, image: np.ndarray) -> Optional[str]:
        if self.cache_size <= 0:
            return None
        digest = hashlib.sha1(np.ascontiguousarray(image).tobytes())
        digest.update(repr(image.shape).encode("ascii"))
        return digest.hexdigest()

    def _locate(self, image: np.ndarray) -> List[Region]:
        height, width = image.shape[:2]
        gray = cv2.GaussianBlur(to_gray(image), (5, 5), 0)

        blurred = cv2.GaussianBlur(gray, (9, 9), 0)
        th = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)[1]
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, CLOSE_KERNEL)
        closed = cv2.morphologyEx(th, cv2.MORPH_CLOSE, kernel)
        closed = cv2.erode(closed, None, iterations=2)
        closed = cv2.dilate(closed, None, iterations=2)

        if self.debug_dir:
            # Horizontal gradient shows the bar structure the kernel is tuned for
            grad_x = cv2.convertScaleAbs(cv2.Sobel(gray, ddepth=cv2.CV_32F, dx=1, dy=0, ksize=3))
            try:
                os.makedirs(self.debug_dir, exist_ok=True)
                cv2.imwrite(os.path.join(self.debug_dir, "regions_gradX.png"), grad_x)
                cv2.imwrite(os.path.join(self.debug_dir, "regions_th.png"), th)
                cv2.imwrite(os.path.join(self.debug_dir, "regions_closed.png"), closed)
            except (OSError, cv2.error) as exc:
                logger.debug("Could not write region debug images: %s", exc)

        contours = cv2.findContours(closed, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)[-2]

        image_area = float(width * height)
        regions: List[Region] = []
        for c in contours:
            x, y, w, h = cv2.boundingRect(c)
            if w < MIN_SIDE or h < MIN_SIDE:
                continue
            if (w * h) / image_area < MIN_AREA_RATIO:
                continue
            aspect = w / float(h)
            if aspect < MIN_ASPECT or aspect > MAX_ASPECT:
                continue
            regions.append(pad_region(x, y, w, h, width, height))

        regions.sort(key=lambda r: r.area, reverse=True)
        return regions[: self.max_regions]


def pad_region(x: int, y: int, w: int, h: int, image_width: int, image_height: int) -> Region:
    """Grow a box by PAD_RATIO of its smaller side, clamped to the image."""
    pad = int(min(w, h) * PAD_RATIO)
    px = max(0, x - pad)
    py = max(0, y - pad)
    pw = min(image_width - px, w + 2 * pad)
    ph = min(image_height - py, h + 2 * pad)
    return Region(px, py, pw, ph)
