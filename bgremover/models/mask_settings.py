from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Iterable, Tuple
import os

from dotenv import load_dotenv

from .errors import InvalidTolerance
from .palette import RGBColor, parse_hex_color

# Load environment variables
load_dotenv()

DEFAULT_TOLERANCE = int(os.getenv("DEFAULT_TOLERANCE", "20"))
MAX_SQUARED_DISTANCE = 255 * 255 * 3


def validate_tolerance(value) -> int:
    """
    Accepts ints (or int-like strings from form/JSON input) in [0, 100].
    Bools and floats with a fractional part are rejected.
    """
    if isinstance(value, bool):
        raise InvalidTolerance(f"Tolerance must be an integer, got {value!r}")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise InvalidTolerance(f"Tolerance must be an integer, got {value!r}") from None
    elif isinstance(value, float):
        if not value.is_integer():
            raise InvalidTolerance(f"Tolerance must be an integer, got {value!r}")
        value = int(value)
    elif not isinstance(value, int):
        raise InvalidTolerance(f"Tolerance must be an integer, got {value!r}")

    if not 0 <= value <= 100:
        raise InvalidTolerance(f"Tolerance must be within [0, 100], got {value}")
    return value


def tolerance_to_threshold(tolerance: int) -> float:
    """
    Squared-distance threshold: the percentage scaled linearly against
    the largest possible squared RGB distance (255² · 3).
    """
    return (tolerance / 100) * MAX_SQUARED_DISTANCE


def unique_colors(colors: Iterable) -> Tuple[RGBColor, ...]:
    """Parse colors and drop duplicates, keeping first-seen order."""
    seen = []
    for value in colors:
        color = parse_hex_color(value)
        if color not in seen:
            seen.append(color)
    return tuple(seen)


@dataclass(frozen=True)
class MaskSettings:
    """
    Value-object holding the user's selection set and tolerance.
    Instances are always valid: build them through ``create`` or the
    ``with_*`` helpers.
    """
    targets: Tuple[RGBColor, ...] = field(default_factory=tuple)
    tolerance: int = DEFAULT_TOLERANCE

    @classmethod
    def create(cls, targets: Iterable = (), tolerance=DEFAULT_TOLERANCE) -> "MaskSettings":
        return cls(targets=unique_colors(targets),
                   tolerance=validate_tolerance(tolerance))

    # ── Selection edits (return new objects) ─────────────────────────
    def toggled(self, color) -> "MaskSettings":
        """Add the color when absent, remove it when present."""
        color = parse_hex_color(color)
        if color in self.targets:
            return replace(self, targets=tuple(c for c in self.targets if c != color))
        return replace(self, targets=self.targets + (color,))

    def with_targets(self, colors: Iterable) -> "MaskSettings":
        return replace(self, targets=unique_colors(colors))

    def with_tolerance(self, tolerance) -> "MaskSettings":
        return replace(self, tolerance=validate_tolerance(tolerance))

    # ── Derived values ───────────────────────────────────────────────
    @property
    def threshold_squared(self) -> float:
        return tolerance_to_threshold(self.tolerance)

    def hex_targets(self) -> list[str]:
        return [c.to_hex() for c in self.targets]
