import codecs
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

from .models import ConfigError, SymbolFormat

DECODER_BACKENDS = ("zxing", "pyzbar", "zbarimg")


@dataclass(frozen=True)
class GenderRule:
	"""Parity convention of the issuing authority.

	`digit_index` maps an ID length to the position of the digit whose parity
	selects the label (negative positions count from the end).
	"""
	odd_label: str = "male"
	even_label: str = "female"
	digit_index: Dict[int, int] = field(default_factory=lambda: {11: -1, 14: 12})

	def resolve(self, national_id: str) -> Optional[str]:
		if not national_id or not national_id.isdigit():
			return None
		pos = self.digit_index.get(len(national_id))
		if pos is None:
			return None
		digit = int(national_id[pos])
		return self.odd_label if digit % 2 == 1 else self.even_label


@dataclass
class ScanConfig:
	decoder_backend: str = "zxing"
	expected_format: SymbolFormat = SymbolFormat.PDF417
	# Raw bytes pass through this encoding one byte per character
	pass_through_encoding: str = "latin-1"
	target_encoding: str = "cp1256"
	script_range: Tuple[int, int] = (0x0600, 0x06FF)
	min_valid_ratio: float = 0.70
	min_script_ratio: float = 0.30
	max_regions: int = 6
	region_cache_size: int = 0
	national_id_length: int = 11
	gender_rule: GenderRule = field(default_factory=GenderRule)
	zbarimg_path: str = "zbarimg"

	def __post_init__(self) -> None:
		self.validate()

	def validate(self) -> None:
		if self.decoder_backend not in DECODER_BACKENDS:
			raise ConfigError(
				f"Unknown decoder backend {self.decoder_backend!r}; expected one of {', '.join(DECODER_BACKENDS)}"
			)
		for enc in (self.pass_through_encoding, self.target_encoding):
			try:
				codecs.lookup(enc)
			except LookupError:
				raise ConfigError(f"Unknown text encoding {enc!r}")
		if self.max_regions < 0 or self.region_cache_size < 0:
			raise ConfigError("max_regions and region_cache_size must not be negative")
		if self.national_id_length <= 0:
			raise ConfigError("national_id_length must be positive")

	@classmethod
	def from_env(cls, **overrides) -> "ScanConfig":
		"""Build a config from IDSCAN_* variables (.env files honoured)."""
		_load_env_chain()
		values: Dict[str, object] = {}
		backend = os.environ.get("IDSCAN_DECODER_BACKEND", "").strip()
		if backend:
			values["decoder_backend"] = backend.lower()
		target = os.environ.get("IDSCAN_TARGET_ENCODING", "").strip()
		if target:
			values["target_encoding"] = target
		passthrough = os.environ.get("IDSCAN_PASS_THROUGH_ENCODING", "").strip()
		if passthrough:
			values["pass_through_encoding"] = passthrough
		zbarimg = os.environ.get("IDSCAN_ZBARIMG", "").strip()
		if zbarimg:
			values["zbarimg_path"] = zbarimg
		for key, name in (
			("max_regions", "IDSCAN_MAX_REGIONS"),
			("region_cache_size", "IDSCAN_REGION_CACHE"),
			("national_id_length", "IDSCAN_NATIONAL_ID_LENGTH"),
		):
			raw = os.environ.get(name, "").strip()
			if raw:
				try:
					values[key] = int(raw)
				except ValueError:
					raise ConfigError(f"{name} must be an integer, got {raw!r}")
		odd = os.environ.get("IDSCAN_GENDER_ODD", "").strip()
		even = os.environ.get("IDSCAN_GENDER_EVEN", "").strip()
		if odd or even:
			values["gender_rule"] = GenderRule(odd_label=odd or "male", even_label=even or "female")
		values.update(overrides)
		return cls(**values)


def _load_env_chain() -> None:
	load_dotenv()
	if os.path.exists(".env.local"):
		load_dotenv(dotenv_path=".env.local", override=True)
	elif os.path.exists("env.local"):
		load_dotenv(dotenv_path="env.local", override=True)
