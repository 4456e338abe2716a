import contextlib
import os
import shutil
import subprocess
import sys
import tempfile
import zipfile
from typing import Iterator, List

import numpy as np
from PIL import Image, UnidentifiedImageError

from .models import ImageLoadError

# Register HEIC/HEIF with Pillow if available
try:
	import pillow_heif  # type: ignore
	pillow_heif.register_heif_opener()
except ImportError:
	pillow_heif = None  # type: ignore

CARD_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp", ".heic", ".heif"}
HEIF_EXTENSIONS = {".heic", ".heif"}


def _extension(path: str) -> str:
	return os.path.splitext(path)[1].lower()


def is_card_image(name: str) -> bool:
	"""True for a supported scan/photo name that is not macOS metadata."""
	parts = name.replace("\\", "/").split("/")
	if "__MACOSX" in parts or parts[-1].startswith("."):
		return False
	return _extension(name) in CARD_EXTENSIONS


@contextlib.contextmanager
def _sips_jpeg(path: str) -> Iterator[str]:
	"""Yield a temporary JPEG copy of a HEIC photo made by macOS `sips`."""
	if sys.platform != "darwin" or shutil.which("sips") is None:
		raise ImageLoadError(f"No HEIC support for {path}; install pillow-heif")
	fd, jpeg = tempfile.mkstemp(suffix=".jpg")
	os.close(fd)
	try:
		proc = subprocess.run(["sips", "-s", "format", "jpeg", path, "--out", jpeg], capture_output=True)
		if proc.returncode != 0:
			detail = proc.stderr.decode(errors="ignore").strip()
			raise ImageLoadError(f"sips could not convert {path}: {detail}")
		yield jpeg
	finally:
		with contextlib.suppress(OSError):
			os.unlink(jpeg)


def _read_rgb(path: str) -> np.ndarray:
	with Image.open(path) as img:
		return np.array(img.convert("RGB"))


def load_image(path: str) -> np.ndarray:
	"""Load a card photo/scan as an RGB uint8 array of shape (H, W, 3).

	HEIC photos Pillow cannot open (no pillow-heif) are converted with `sips`
	on macOS.
	"""
	try:
		return _read_rgb(path)
	except UnidentifiedImageError as exc:
		if _extension(path) not in HEIF_EXTENSIONS:
			raise ImageLoadError(f"Unreadable image: {path}") from exc
	except OSError as exc:
		raise ImageLoadError(f"Cannot open image {path}: {exc}") from exc

	with _sips_jpeg(path) as jpeg:
		try:
			return _read_rgb(jpeg)
		except OSError as exc:
			raise ImageLoadError(f"Unreadable image: {path}") from exc


def _unpack_zip(archive: str) -> List[str]:
	"""Extract only the card images of an archive; the temp dir outlives the call."""
	target = tempfile.mkdtemp(prefix="idcard_zip_")
	with zipfile.ZipFile(archive) as zf:
		members = [m for m in zf.namelist() if not m.endswith("/") and is_card_image(m)]
		return [zf.extract(m, target) for m in members]


def discover_images(src_path: str) -> List[str]:
	"""Return card image paths in a file, folder or zip archive, sorted."""
	abspath = os.path.abspath(src_path)
	if not os.path.exists(abspath):
		raise FileNotFoundError(f"Source path not found: {abspath}")

	if zipfile.is_zipfile(abspath):
		return sorted(_unpack_zip(abspath))
	if os.path.isfile(abspath):
		return [abspath] if is_card_image(abspath) else []

	found = [
		os.path.join(root, name)
		for root, _dirs, files in os.walk(abspath)
		for name in files
		if is_card_image(os.path.join(os.path.relpath(root, abspath), name))
	]
	return sorted(found)
