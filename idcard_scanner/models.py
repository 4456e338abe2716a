from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np


class IdScanError(Exception):
	"""Base class for errors raised by the scanner outside the decode cascade."""


class ConfigError(IdScanError):
	pass


class ImageLoadError(IdScanError):
	pass


class SymbolFormat(str, Enum):
	PDF417 = "PDF417"
	QR_CODE = "QR Code"
	DATA_MATRIX = "Data Matrix"
	AZTEC = "Aztec"
	CODE_128 = "Code 128"
	CODE_39 = "Code 39"
	EAN_13 = "EAN-13"
	EAN_8 = "EAN-8"
	UPC_A = "UPC-A"
	UPC_E = "UPC-E"
	ITF = "ITF"
	UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Region:
	"""Axis-aligned rectangle in image coordinates."""
	x: int
	y: int
	width: int
	height: int

	@property
	def area(self) -> int:
		return self.width * self.height

	def crop(self, image: np.ndarray) -> np.ndarray:
		# Slicing gives a view; callers must not write into it
		return image[self.y : self.y + self.height, self.x : self.x + self.width]


@dataclass(frozen=True)
class RawDecodeResult:
	raw_bytes: bytes  # exact decoder output, never re-encoded
	symbol_format: SymbolFormat
	# Locator points in the coordinates of the image handed to the decoder
	locator_points: Tuple[Tuple[float, float], ...] = ()
	confidence: int = 50  # heuristic 0..100, not a probability
	detection_method: Optional[str] = None

	def with_method(self, method: str) -> "RawDecodeResult":
		return RawDecodeResult(
			raw_bytes=self.raw_bytes,
			symbol_format=self.symbol_format,
			locator_points=self.locator_points,
			confidence=self.confidence,
			detection_method=method,
		)


@dataclass(frozen=True)
class FieldAnnotation:
	label: str
	value: str


FieldAnalysis = Tuple[FieldAnnotation, ...]


@dataclass(frozen=True)
class IdentityRecord:
	fields: Tuple[str, ...] = ()
	first_name: str = ""
	last_name: str = ""
	father_name: str = ""
	mother_name: str = ""
	birth_info: str = ""
	birth_place: str = ""
	birth_date: str = ""
	national_id: str = ""
	gender: Optional[str] = None
	# (field index >= 6, speculative annotations), in field order
	extra_fields: Tuple[Tuple[int, FieldAnalysis], ...] = ()
	raw_text: str = ""
	national_id_length: int = 11

	@property
	def has_data(self) -> bool:
		return bool(self.fields)

	@property
	def is_valid(self) -> bool:
		return (
			bool(self.national_id)
			and len(self.national_id) == self.national_id_length
			and bool(self.first_name)
		)

	@property
	def field_count(self) -> int:
		return len(self.fields)

	@property
	def full_name(self) -> str:
		# Issuing authority's order: first name, father's name, family name
		parts = [self.first_name, self.father_name, self.last_name]
		return " ".join(p for p in parts if p)

	def annotations(self, index: int) -> FieldAnalysis:
		"""Annotations for trailing field `index`; () when there are none."""
		for i, analysis in self.extra_fields:
			if i == index:
				return analysis
		return ()

	def to_dict(self) -> Dict[str, object]:
		"""Plain mapping for report writers and the CLI."""
		extras: Dict[str, List[Dict[str, str]]] = {}
		for index, annotations in self.extra_fields:
			extras[str(index)] = [{"label": a.label, "value": a.value} for a in annotations]
		return {
			"valid": self.is_valid,
			"first_name": self.first_name,
			"last_name": self.last_name,
			"father_name": self.father_name,
			"mother_name": self.mother_name,
			"full_name": self.full_name,
			"birth_info": self.birth_info,
			"birth_place": self.birth_place,
			"birth_date": self.birth_date,
			"national_id": self.national_id,
			"gender": self.gender,
			"field_count": self.field_count,
			"fields": list(self.fields),
			"extra_fields": extras,
		}


# Returned for empty/missing input; "nothing to parse" is a normal outcome
NO_DATA = IdentityRecord()
