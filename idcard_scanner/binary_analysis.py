"""
Heuristic annotations for the undocumented trailing fields of the payload.

Nothing here is authoritative: every label is phrased as "possible" or
"likely", and several heuristics may fire on the same field.
"""

import base64
import binascii
import math
import re
from collections import Counter
from typing import List, Optional, Tuple

from .models import FieldAnalysis, FieldAnnotation

DMY_DATE = re.compile(r"(?<!\d)(\d{1,2})[-/](\d{1,2})[-/](\d{4})(?!\d)")
YMD_COMPACT = re.compile(r"(?<!\d)((?:19|20)\d{2})(\d{2})(\d{2})(?!\d)")
NUMERIC_RUN = re.compile(r"\d{4,}")
HEX_RUN = re.compile(r"[0-9A-Fa-f]{4,}")
BASE64_FIELD = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")

HASH_LENGTHS = {16: "MD5", 20: "SHA-1", 32: "SHA-256"}
BLOB_MIN_LENGTH = 100
# Entropy of very short fields says nothing useful
ENTROPY_MIN_LENGTH = 16
ENCRYPTED_ENTROPY = 7.5
COMPRESSED_ENTROPY = 6.0


def _as_text(raw: bytes) -> str:
    # One byte per character so regex offsets match byte offsets
    return raw.decode("latin-1")


def _valid_ymd(year: int, month: int, day: int) -> bool:
    return 1900 <= year <= 2100 and 1 <= month <= 12 and 1 <= day <= 31


def extract_dates(raw: bytes) -> List[str]:
    """Return plausible dates in order of appearance, as written in the field."""
    text = _as_text(raw)
    found: List[Tuple[int, str]] = []
    for m in DMY_DATE.finditer(text):
        day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if _valid_ymd(year, month, day):
            found.append((m.start(), m.group(0)))
    for m in YMD_COMPACT.finditer(text):
        year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if _valid_ymd(year, month, day):
            found.append((m.start(), m.group(0)))
    found.sort(key=lambda item: item[0])
    return [value for _pos, value in found]


def shannon_entropy(raw: bytes) -> float:
    """Entropy of the byte histogram in bits per byte (0..8)."""
    if not raw:
        return 0.0
    total = float(len(raw))
    counts = Counter(raw)
    return -sum((c / total) * math.log2(c / total) for c in counts.values())


def normalized_entropy(raw: bytes) -> float:
    """Bias-corrected entropy rescaled to the 8-bit range, capped at 8.

    The histogram estimate undershoots on short samples (n uniform bytes
    collide long before n reaches 256), so the Miller-Madow term
    (k - 1) / (2n ln 2) is added, k being the number of distinct bytes.
    The result is measured against the field's own ceiling log2(min(n, 256)).
    """
    n = len(raw)
    if n < 2:
        return 0.0
    distinct = len(set(raw))
    corrected = shannon_entropy(raw) + (distinct - 1) / (2.0 * n * math.log(2))
    ceiling = math.log2(min(n, 256))
    return min(corrected * 8.0 / ceiling, 8.0)


def probe_base64(raw: bytes) -> Optional[str]:
    text = _as_text(raw).strip()
    if len(text) < 4 or len(text) % 4 != 0 or not BASE64_FIELD.match(text):
        return None
    try:
        decoded = base64.b64decode(text, validate=True)
        value = decoded.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    value = value.strip()
    if not value or not value.isprintable():
        return None
    return value


class BinaryFieldAnalyzer:
    def annotate(self, raw_field: bytes) -> FieldAnalysis:
        notes: List[FieldAnnotation] = []
        if not raw_field:
            return ()
        text = _as_text(raw_field)

        for d in extract_dates(raw_field):
            notes.append(FieldAnnotation("possible date", d))
        for m in NUMERIC_RUN.finditer(text):
            notes.append(FieldAnnotation("numeric sequence", m.group(0)))

        decoded = probe_base64(raw_field)
        if decoded is not None:
            notes.append(FieldAnnotation("possible base64 text", decoded))

        notes.extend(self._byte_pattern(raw_field))

        for m in HEX_RUN.finditer(text):
            notes.append(FieldAnnotation("hex sequence", m.group(0)))
        return tuple(notes)

    def _byte_pattern(self, raw_field: bytes) -> List[FieldAnnotation]:
        notes: List[FieldAnnotation] = []
        n = len(raw_field)
        if n in HASH_LENGTHS:
            notes.append(
                FieldAnnotation("possible hash", f"{n} bytes (hash-like length, e.g. {HASH_LENGTHS[n]})")
            )
        elif n > BLOB_MIN_LENGTH:
            notes.append(FieldAnnotation("possible biometric/signature data", f"{n} bytes"))

        if n >= ENTROPY_MIN_LENGTH:
            entropy = normalized_entropy(raw_field)
            if entropy > ENCRYPTED_ENTROPY:
                notes.append(FieldAnnotation("likely encrypted/random", f"entropy {entropy:.2f} bits/byte"))
            elif entropy > COMPRESSED_ENTROPY:
                notes.append(FieldAnnotation("likely compressed/encoded", f"entropy {entropy:.2f} bits/byte"))
        return notes

    def annotate_trailing(self, raw_field: bytes) -> FieldAnalysis:
        """Guess issue/expiry dates in the last field; speculative only."""
        dates = extract_dates(raw_field or b"")
        if len(dates) >= 2:
            return (
                FieldAnnotation("possible issue date", dates[0]),
                FieldAnnotation("possible expiry date", dates[1]),
            )
        if len(dates) == 1:
            return (FieldAnnotation("possible expiry date", dates[0]),)
        return ()
