"""
FITS primary header decoding.

Reads 2880-byte header blocks until the END card, parses the 80-column
``KEY = VALUE / COMMENT`` cards into an immutable mapping and reports the
byte offset where the pixel data begins.
"""

import logging
import re
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from ..exceptions import HeaderParseError
from ..types import ByteSource

logger = logging.getLogger(__name__)

BLOCK_SIZE = 2880
CARD_SIZE = 80
CARDS_PER_BLOCK = BLOCK_SIZE // CARD_SIZE
DEFAULT_MAX_BLOCKS = 4

_CARD_RE = re.compile(r"^([A-Za-z0-9_-]+)\s*=\s?(.*)$")
_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([EeDd][+-]?\d+)?$")


class FitsHeader(Mapping):
    """Read-only mapping of FITS keywords to typed values."""

    def __init__(self, cards: Mapping[str, Any]):
        self._cards: Dict[str, Any] = dict(cards)

    def __getitem__(self, key: str) -> Any:
        return self._cards[key.upper()]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.upper() in self._cards

    def __iter__(self) -> Iterator[str]:
        return iter(self._cards)

    def __len__(self) -> int:
        return len(self._cards)

    def __repr__(self) -> str:
        return f"FitsHeader({self._cards!r})"

    def get_float(self, key: str, default: float) -> float:
        """Numeric keyword value, or ``default`` when absent or non-numeric."""
        value = self.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        return float(value)


def _coerce_value(text: str) -> Any:
    if text in ("T", "F"):
        return text == "T"
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text.replace("D", "E").replace("d", "e"))
    return text


def _split_value(text: str) -> Any:
    """Split the value field from its comment and convert it."""
    text = text.strip()
    if text.startswith("'"):
        # Quoted string; a doubled quote stands for a literal quote
        chars = []
        i = 1
        while i < len(text):
            ch = text[i]
            if ch == "'":
                if i + 1 < len(text) and text[i + 1] == "'":
                    chars.append("'")
                    i += 2
                    continue
                break
            chars.append(ch)
            i += 1
        return "".join(chars).strip()
    value = text.split("/", 1)[0].strip()
    return _coerce_value(value)


def parse_card(card: str) -> Optional[Tuple[str, Any]]:
    """
    Parse one 80-column header card.

    Args:
        card: Card text (trailing padding allowed)

    Returns:
        (key, value) for ``KEY = VALUE`` cards, None for commentary cards
        (COMMENT, HISTORY, blank) or anything that does not match.
    """
    match = _CARD_RE.match(card.rstrip())
    if not match:
        return None
    key = match.group(1).upper()
    if len(key) > 8 or key in ("COMMENT", "HISTORY"):
        return None
    return key, _split_value(match.group(2))


def _is_end_card(card: bytes) -> bool:
    return card[:8].rstrip() == b"END"


def parse_header_bytes(raw: bytes) -> Tuple[FitsHeader, int]:
    """
    Parse header bytes that contain an END card.

    Returns:
        (header, data_offset) where data_offset is the END card position
        rounded up to the next block boundary.

    Raises:
        HeaderParseError: If no END card is present
    """
    cards: Dict[str, Any] = {}
    for index in range(len(raw) // CARD_SIZE):
        card = raw[index * CARD_SIZE:(index + 1) * CARD_SIZE]
        if _is_end_card(card):
            data_offset = (index // CARDS_PER_BLOCK + 1) * BLOCK_SIZE
            return FitsHeader(cards), data_offset
        parsed = parse_card(card.decode("ascii", errors="replace"))
        if parsed is not None:
            key, value = parsed
            cards.setdefault(key, value)
    raise HeaderParseError("No END card found in FITS header")


def read_header(source: ByteSource, max_blocks: int = DEFAULT_MAX_BLOCKS,
                file_path: Optional[str] = None) -> Tuple[FitsHeader, int]:
    """
    Read and parse the primary header from a byte source.

    Blocks are read one at a time and parsing stops at the first END card,
    so the cost is bounded by ``max_blocks`` blocks.

    Args:
        source: Random-access byte source positioned at a FITS file start
        max_blocks: Maximum number of 2880-byte blocks to scan
        file_path: Used only for error reporting

    Returns:
        (header, data_offset)

    Raises:
        HeaderParseError: If no END card is found within the cap
    """
    raw = bytearray()
    for block_index in range(max_blocks):
        block = source.read_at(block_index * BLOCK_SIZE, BLOCK_SIZE)
        raw.extend(block)
        for card_index in range(len(block) // CARD_SIZE):
            if _is_end_card(block[card_index * CARD_SIZE:(card_index + 1) * CARD_SIZE]):
                header, data_offset = parse_header_bytes(bytes(raw))
                logger.debug(f"Parsed {len(header)} header keywords, data at byte {data_offset}")
                return header, data_offset
        if len(block) < BLOCK_SIZE:
            break

    raise HeaderParseError(
        f"No END card within the first {max_blocks} header blocks ({len(raw)} bytes read)",
        file_path=file_path,
        bytes_read=len(raw),
    )
