"""
Line ending detection and conversion.

Operates on raw byte buffers only; reading and writing files is left to the
caller.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

CR = b"\r"
LF = b"\n"
CRLF = b"\r\n"

# Alternation order matters: CRLF must win over a lone CR at the same position.
_TERMINATOR_RE = re.compile(rb"\r\n|\r|\n")

BytesLike = Union[bytes, bytearray]


class LineEndingVariant(Enum):
    LF = "lf"
    CRLF = "crlf"
    CR = "cr"
    MIXED = "mixed"
    NONE = "none"

    def __str__(self) -> str:
        return self.value

    def to_string(self) -> str:
        """Return the canonical lowercase tag."""
        return self.value

    def to_bytes(self) -> Optional[bytes]:
        """Return the terminator sequence, or None for MIXED and NONE."""
        return _TERMINATORS.get(self)

    @classmethod
    def from_string(cls, text: str) -> Optional["LineEndingVariant"]:
        """
        Look up a variant by alias.

        Accepts ``lf``/``unix``, ``crlf``/``win`` and ``cr``/``mac``
        (case-sensitive). Returns None for anything else.
        """
        return _ALIASES.get(text)


_TERMINATORS: Dict[LineEndingVariant, bytes] = {
    LineEndingVariant.LF: LF,
    LineEndingVariant.CRLF: CRLF,
    LineEndingVariant.CR: CR,
}

_ALIASES: Dict[str, LineEndingVariant] = {
    "lf": LineEndingVariant.LF,
    "unix": LineEndingVariant.LF,
    "crlf": LineEndingVariant.CRLF,
    "win": LineEndingVariant.CRLF,
    "cr": LineEndingVariant.CR,
    "mac": LineEndingVariant.CR,
}


@dataclass(frozen=True)
class LineEndingInfo:
    variant: LineEndingVariant
    lf_count: int = 0
    crlf_count: int = 0
    cr_count: int = 0


def classify(lf_count: int, crlf_count: int, cr_count: int) -> LineEndingVariant:
    """Derive the variant from the three terminator counters."""
    types_present = sum(1 for count in (lf_count, crlf_count, cr_count) if count > 0)
    if types_present > 1:
        return LineEndingVariant.MIXED
    if lf_count > 0:
        return LineEndingVariant.LF
    if crlf_count > 0:
        return LineEndingVariant.CRLF
    if cr_count > 0:
        return LineEndingVariant.CR
    return LineEndingVariant.NONE


def detect_line_endings(content: BytesLike) -> LineEndingInfo:
    """
    Count the terminators in a buffer and classify it.

    A CR immediately followed by LF counts as one CRLF and nothing else, so
    lone CRs and lone LFs are whatever remains once the pairs are removed.
    CRLF pairs never overlap, so the counts equal those of a single
    left-to-right scan.
    """
    crlf_count = content.count(CRLF)
    cr_count = content.count(CR) - crlf_count
    lf_count = content.count(LF) - crlf_count
    return LineEndingInfo(
        variant=classify(lf_count, crlf_count, cr_count),
        lf_count=lf_count,
        crlf_count=crlf_count,
        cr_count=cr_count,
    )


def convert_line_endings(content: BytesLike, target: LineEndingVariant) -> bytes:
    """
    Return a copy of ``content`` with every terminator replaced by ``target``'s.

    Non-terminator bytes are copied through unchanged, so a buffer that
    already uses ``target`` throughout comes back byte-equal. The input is
    never modified.

    Raises:
        ValueError: if ``target`` is MIXED or NONE.
    """
    terminator = target.to_bytes() if isinstance(target, LineEndingVariant) else None
    if terminator is None:
        raise ValueError(
            f"Cannot convert to {target}: target must be lf, crlf or cr"
        )
    return _TERMINATOR_RE.sub(terminator, bytes(content))
