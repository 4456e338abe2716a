import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import ScanConfig
from .field_parser import FieldParser
from .models import NO_DATA, IdentityRecord, RawDecodeResult
from .orchestrator import DecodeOrchestrator
from .region_finder import RegionCandidateFinder
from .symbol_decoder import SymbolDecoder, make_decoder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
	record: IdentityRecord
	decode: Optional[RawDecodeResult] = None

	@property
	def found(self) -> bool:
		return self.decode is not None


class IdCardScanner:
	"""Image in, IdentityRecord out.

	Calls share no mutable state apart from the optional region cache, so
	one scanner may serve several worker threads.
	"""

	def __init__(
		self,
		config: Optional[ScanConfig] = None,
		decoder: Optional[SymbolDecoder] = None,
		debug_dir: Optional[str] = None,
	):
		self.config = config or ScanConfig()
		finder = RegionCandidateFinder(
			max_regions=self.config.max_regions,
			cache_size=self.config.region_cache_size,
			debug_dir=debug_dir,
		)
		self.orchestrator = DecodeOrchestrator(finder, decoder or make_decoder(self.config))
		self.parser = FieldParser(self.config)
		self._executor: Optional[ThreadPoolExecutor] = None
		self._executor_lock = threading.Lock()

	def scan(self, image: np.ndarray, cancel: Optional[threading.Event] = None) -> ScanResult:
		decoded = self.orchestrator.run(image, cancel=cancel)
		if decoded is None:
			return ScanResult(record=NO_DATA)
		record = self.parser.parse_payload(decoded.raw_bytes)
		if not record.is_valid:
			logger.warning(
				"Decoded %d byte(s) but the record is incomplete (%d field(s))",
				len(decoded.raw_bytes),
				record.field_count,
			)
		return ScanResult(record=record, decode=decoded)

	def submit(self, image: np.ndarray, cancel: Optional[threading.Event] = None) -> "Future[ScanResult]":
		"""Run one whole scan on a background worker thread."""
		with self._executor_lock:
			if self._executor is None:
				self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="idcard-scan")
		return self._executor.submit(self.scan, image, cancel)

	def close(self) -> None:
		with self._executor_lock:
			if self._executor is not None:
				self._executor.shutdown(wait=True)
				self._executor = None

	def __enter__(self) -> "IdCardScanner":
		return self

	def __exit__(self, *exc_info) -> None:
		self.close()
