from __future__ import annotations
from dataclasses import dataclass
import re

from .errors import InvalidSelection

QUANTIZATION_FACTOR = 4  # 2^4 = 16 levels per channel

_HEX_RE = re.compile(r"^#?([a-fA-F\d]{2})([a-fA-F\d]{2})([a-fA-F\d]{2})$")


@dataclass(frozen=True)
class RGBColor:
    """
    Value-object for a single opaque color (no alpha).
    Used both for palette entries and for user-selected targets.
    """
    r: int
    g: int
    b: int

    def as_tuple(self) -> tuple[int, int, int]:
        return self.r, self.g, self.b

    def to_hex(self) -> str:
        return "#{:02X}{:02X}{:02X}".format(self.r, self.g, self.b)

    # ── Quantization helpers ─────────────────────────────────────────
    @classmethod
    def from_bucket_key(cls, key: int) -> "RGBColor":
        """
        Rebuild the bucket floor from a flat key ``r*256 + g*16 + b``.
        (15, 0, 0) → (240, 0, 0)
        """
        r, g, b = (key >> 8) & 0xF, (key >> 4) & 0xF, key & 0xF
        return cls(r << QUANTIZATION_FACTOR,
                   g << QUANTIZATION_FACTOR,
                   b << QUANTIZATION_FACTOR)

    def bucket_key(self) -> int:
        r, g, b = (c >> QUANTIZATION_FACTOR for c in self.as_tuple())
        return (r << 8) | (g << 4) | b


# A palette entry is just a color whose channels are bucket floors.
PaletteEntry = RGBColor


def parse_hex_color(value) -> RGBColor:
    """
    Parse '#RRGGBB' / 'rrggbb' into an RGBColor.

    Raises:
        InvalidSelection: the value is not a 6-digit hex triple.
    """
    if isinstance(value, RGBColor):
        return value
    if not isinstance(value, str):
        raise InvalidSelection(f"Color must be a hex string, got {type(value).__name__}")
    match = _HEX_RE.match(value.strip())
    if match is None:
        raise InvalidSelection(f"Malformed color value: {value!r}")
    return RGBColor(*(int(part, 16) for part in match.groups()))
