"""Data model shared by the quantization and grid modules."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

import numpy as np

from pixelgrid.colors import Color, get_grayscale

MAX_COLORS = 128  # Hard ceiling on distinct opaque colors and on the palette budget
TRANSPARENT_NUMBER = 0  # Palette number reserved for transparent cells


class InputRejected(ValueError):
    """The image (or the requested palette budget) cannot be processed at all."""


@dataclass(frozen=True)
class PaletteEntry:
    color: Color
    number: int
    count: int = 0

    @property
    def brightness(self) -> int:
        return get_grayscale(self.color.r, self.color.g, self.color.b)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "color": {"r": int(self.color.r), "g": int(self.color.g), "b": int(self.color.b)},
            "hex": self.color.hex,
            "count": int(self.count),
            "brightness": self.brightness,
        }


Palette = List[PaletteEntry]


@dataclass
class ColorBox:
    """
    An axis-aligned region of RGB space and the pixels that fall in it.

    The box owns its pixel array; children produced by a split never share
    memory with the parent.
    """
    pixels: np.ndarray  # (N, 3) int64
    min: np.ndarray = field(init=False)
    max: np.ndarray = field(init=False)

    def __post_init__(self):
        self.pixels = np.array(self.pixels, dtype=np.int64).reshape(-1, 3)
        self.update_bounds()

    def update_bounds(self) -> None:
        if len(self.pixels) == 0:
            self.min = np.full(3, 255, dtype=np.int64)
            self.max = np.zeros(3, dtype=np.int64)
            return
        self.min = self.pixels.min(axis=0)
        self.max = self.pixels.max(axis=0)

    @property
    def ranges(self) -> np.ndarray:
        return np.maximum(self.max - self.min, 0)

    @property
    def volume(self) -> int:
        return int(np.prod(self.ranges))

    def __len__(self) -> int:
        return len(self.pixels)


@dataclass
class GridCell:
    row: int
    col: int
    color: Color
    original_color: Color
    number: int
    is_transparent: bool
    revealed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "col": self.col,
            "color": list(self.color.rgb) + ([self.color.a] if self.color.a is not None else []),
            "original_color": list(self.original_color.rgb),
            "number": self.number,
            "is_transparent": self.is_transparent,
            "revealed": self.revealed,
        }


Grid = List[List[GridCell]]


@dataclass(frozen=True)
class DirectResult:
    """Palette built 1:1 from the image's own colors; no pixel was changed."""
    palette: Palette
    distinct_colors: int


@dataclass(frozen=True)
class QuantizedResult:
    """Palette produced by a quantizer; pixels still need remapping onto it."""
    palette: Palette
    distinct_colors: int
    algorithm: str
    iterations: int = 0


PaletteResult = Union[DirectResult, QuantizedResult]
