"""
Reinterpret raw barcode bytes as text in the card's national code page.

The decoder hands over one byte per character; the same bytes read as
Windows-1256 give Arabic. Nothing in the payload says which reading is right,
so a reinterpretation is accepted only when the result looks like text in
the target script.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import ScanConfig

logger = logging.getLogger(__name__)

DELIMITER = b"#"
PUNCTUATION = frozenset("-/,.")


@dataclass(frozen=True)
class ScriptScore:
    total: int
    script: int
    valid: int

    @property
    def valid_ratio(self) -> float:
        return self.valid / float(self.total) if self.total else 0.0

    @property
    def script_ratio(self) -> float:
        return self.script / float(self.total) if self.total else 0.0


def score_text(text: str, script_range: Tuple[int, int] = (0x0600, 0x06FF)) -> ScriptScore:
    lo, hi = script_range
    script = spaces = digits = punct = 0
    for ch in text:
        if lo <= ord(ch) <= hi:
            script += 1
        elif ch.isspace():
            spaces += 1
        elif ch.isdigit():
            digits += 1
        elif ch in PUNCTUATION:
            punct += 1
    return ScriptScore(total=len(text), script=script, valid=script + spaces + digits + punct)


class TextRecoveryEngine:
    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()

    def score(self, text: str) -> ScriptScore:
        return score_text(text, self.config.script_range)

    def is_plausible(self, text: str) -> bool:
        s = self.score(text)
        return (
            s.script > 0
            and s.valid_ratio > self.config.min_valid_ratio
            and s.script_ratio > self.config.min_script_ratio
        )

    def recover(self, raw: Optional[bytes]) -> str:
        """Return the target-code-page reading when plausible, else Latin-1."""
        if not raw:
            return ""
        candidate = raw.decode(self.config.target_encoding, errors="replace")
        if self.is_plausible(candidate):
            return candidate
        return raw.decode(self.config.pass_through_encoding, errors="replace")

    def recover_fields(self, raw: Optional[bytes], head_fields: int = 6) -> List[str]:
        """Split on the payload delimiter and recover the fields.

        The first `head_fields` fields (names, birth info, ID) are scored as
        one block, since a short field such as "<city> 20-7-2003" is mostly
        digits on its own. Each trailing field is scored separately so
        opaque binary data cannot sink the names.
        """
        if not raw:
            return []
        parts = raw.split(DELIMITER)
        head, tail = parts[:head_fields], parts[head_fields:]
        block = DELIMITER.join(head).decode(self.config.target_encoding, errors="replace")
        encoding = self.config.target_encoding if self.is_plausible(block) else self.config.pass_through_encoding
        fields = [part.decode(encoding, errors="replace") for part in head]
        fields.extend(self.recover(part) for part in tail)
        logger.debug("Recovered %d field(s) from %d byte(s) using %s for the head", len(fields), len(raw), encoding)
        return fields

    def to_bytes(self, text: str) -> bytes:
        """Best-effort inverse of `recover` for a single field."""
        for enc in (self.config.pass_through_encoding, self.config.target_encoding):
            try:
                return text.encode(enc)
            except UnicodeEncodeError:
                continue
        return text.encode("utf-8")
