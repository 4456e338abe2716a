import argparse
import json
import logging
import sys
from typing import Dict, List, Optional

from tqdm import tqdm

from .config import DECODER_BACKENDS, ScanConfig
from .field_parser import parse_birth_date
from .image_io import discover_images, load_image
from .models import ConfigError, ImageLoadError
from .pipeline import IdCardScanner, ScanResult

logger = logging.getLogger("idcard_scanner")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
	p = argparse.ArgumentParser(description="Decode ID-card barcodes and print the identity records as JSON")
	p.add_argument("--src", required=True, help="Image file, folder or .zip containing images")
	p.add_argument("--backend", choices=DECODER_BACKENDS, help="Symbol decoder backend (default: IDSCAN_DECODER_BACKEND or zxing)")
	p.add_argument("--limit", type=int, default=0, help="Process only first N images")
	p.add_argument("--raw", action="store_true", help="Include the raw payload as hex")
	p.add_argument("--debug-dumps", help="Directory to save region-search debug images")
	p.add_argument("--verbose", "-v", action="store_true", help="Log every cascade stage")
	return p.parse_args(argv)


def result_to_dict(path: str, result: ScanResult, include_raw: bool = False) -> Dict[str, object]:
	out: Dict[str, object] = {"image": path, "found": result.found}
	if result.decode is not None:
		out["symbol_format"] = result.decode.symbol_format.value
		out["confidence"] = result.decode.confidence
		out["detection_method"] = result.decode.detection_method
		if include_raw:
			out["raw_hex"] = result.decode.raw_bytes.hex()
	record = result.record.to_dict()
	born = parse_birth_date(result.record.birth_date)
	record["date_of_birth"] = born.isoformat() if born else None
	out["record"] = record
	return out


def main(argv: Optional[List[str]] = None) -> int:
	args = parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.verbose else logging.WARNING,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)

	try:
		overrides = {"decoder_backend": args.backend} if args.backend else {}
		config = ScanConfig.from_env(**overrides)
	except ConfigError as exc:
		raise SystemExit(f"Invalid configuration: {exc}")

	try:
		paths = discover_images(args.src)
	except FileNotFoundError as exc:
		raise SystemExit(str(exc))
	if args.limit:
		paths = paths[: args.limit]
	if not paths:
		raise SystemExit("No images found.")

	scanner = IdCardScanner(config, debug_dir=args.debug_dumps)
	found = 0
	for path in tqdm(paths, desc="Scanning cards", disable=len(paths) < 2):
		try:
			image = load_image(path)
		except ImageLoadError as exc:
			logger.error("%s", exc)
			continue
		result = scanner.scan(image)
		if result.found:
			found += 1
		print(json.dumps(result_to_dict(path, result, args.raw), ensure_ascii=False))

	if not found:
		print("No barcodes decoded in provided images.", file=sys.stderr)
		return 1
	return 0


if __name__ == "__main__":
	sys.exit(main())
