from datetime import date
from typing import List, Optional, Sequence, Tuple
import logging
import re

from .binary_analysis import BinaryFieldAnalyzer
from .config import ScanConfig
from .models import NO_DATA, FieldAnalysis, IdentityRecord
from .text_recovery import TextRecoveryEngine

logger = logging.getLogger(__name__)

DELIMITER = "#"

# Positions fixed by the issuing authority's layout
FIRST_NAME = 0
LAST_NAME = 1
FATHER_NAME = 2
MOTHER_NAME = 3
BIRTH_INFO = 4
NATIONAL_ID = 5
KNOWN_FIELDS = 6

BIRTH_DATE = re.compile(r"(\d{1,2})[-/](\d{1,2})[-/](\d{4})")


def split_birth_info(birth_info: str) -> Tuple[str, str]:
	"""Split "Damascus 20-7-2003" into place and date. Best-effort.

	Without an embedded date the whole text is taken as the place.
	"""
	text = (birth_info or "").strip()
	if not text:
		return "", ""
	m = BIRTH_DATE.search(text)
	if not m:
		return text, ""
	lead = text[: m.start()]
	# Place is the leading non-digit run
	place = re.match(r"[^\d]*", lead).group(0).strip()
	return place, m.group(0)


def parse_birth_date(value: str) -> Optional[date]:
	"""Turn a D-M-YYYY / D/M/YYYY string into a date, or None."""
	m = BIRTH_DATE.search(value or "")
	if not m:
		return None
	day, month, year = (int(g) for g in m.groups())
	try:
		return date(year, month, day)
	except ValueError:
		return None


def _field(fields: Sequence[str], index: int) -> str:
	return fields[index] if index < len(fields) else ""


class FieldParser:
	def __init__(self, config: Optional[ScanConfig] = None, analyzer: Optional[BinaryFieldAnalyzer] = None):
		self.config = config or ScanConfig()
		self.recovery = TextRecoveryEngine(self.config)
		self.analyzer = analyzer or BinaryFieldAnalyzer()

	def parse(self, text: Optional[str]) -> IdentityRecord:
		"""Map recovered payload text onto an IdentityRecord.

		Empty or missing text gives NO_DATA; missing fields become "".
		"""
		if not text:
			return NO_DATA
		fields = [f.strip() for f in text.split(DELIMITER)]
		raw_fields = [self.recovery.to_bytes(f) for f in text.split(DELIMITER)]
		return self._build(fields, raw_fields, text)

	def parse_payload(self, raw: Optional[bytes]) -> IdentityRecord:
		"""Parse decoder bytes directly, keeping each trailing field's own bytes."""
		if not raw:
			return NO_DATA
		fields = [f.strip() for f in self.recovery.recover_fields(raw)]
		# Trailing fields are opaque bytes and go to the analyzer untrimmed
		raw_fields = raw.split(DELIMITER.encode("ascii"))
		text = DELIMITER.join(fields)
		return self._build(fields, raw_fields, text)

	def _build(self, fields: List[str], raw_fields: List[bytes], text: str) -> IdentityRecord:
		birth_info = _field(fields, BIRTH_INFO)
		place, born = split_birth_info(birth_info)
		national_id = _field(fields, NATIONAL_ID)
		logger.debug("Parsed %d field(s)", len(fields))
		return IdentityRecord(
			fields=tuple(fields),
			first_name=_field(fields, FIRST_NAME),
			last_name=_field(fields, LAST_NAME),
			father_name=_field(fields, FATHER_NAME),
			mother_name=_field(fields, MOTHER_NAME),
			birth_info=birth_info,
			birth_place=place,
			birth_date=born,
			national_id=national_id,
			gender=self.config.gender_rule.resolve(national_id),
			extra_fields=self._annotate_extras(raw_fields),
			raw_text=text,
			national_id_length=self.config.national_id_length,
		)

	def _annotate_extras(self, raw_fields: List[bytes]) -> Tuple[Tuple[int, FieldAnalysis], ...]:
		extras: List[Tuple[int, FieldAnalysis]] = []
		last = len(raw_fields) - 1
		for index in range(KNOWN_FIELDS, len(raw_fields)):
			analysis = self.analyzer.annotate(raw_fields[index])
			if index == last:
				analysis = analysis + self.analyzer.annotate_trailing(raw_fields[index])
			extras.append((index, analysis))
		return tuple(extras)
