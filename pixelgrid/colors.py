import numpy as np
from typing import NamedTuple, Optional, Tuple


class Color(NamedTuple):
    """An 8-bit RGB color with an optional alpha channel."""
    r: int
    g: int
    b: int
    a: Optional[int] = None

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return (self.r, self.g, self.b)

    @property
    def hex(self) -> str:
        return rgb_to_hex(self.r, self.g, self.b)


TRANSPARENT_COLOR = Color(0, 0, 0, 0)


def round_half_up(values):
    """
    Round to the nearest integer with halves going up (0.5 -> 1, 2.5 -> 3).

    numpy's own rounding is half-to-even, which would shift means and
    channel levels that land exactly on .5.
    """
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5).astype(np.int64)


def get_grayscale(r: int, g: int, b: int) -> int:
    """Perceptual brightness (luma) of an RGB triple, rounded to an int."""
    return int(round_half_up(0.299 * r + 0.587 * g + 0.114 * b))


def luma_array(colors: np.ndarray) -> np.ndarray:
    """Vectorized get_grayscale over an (N, 3) array."""
    colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
    return round_half_up(colors @ np.array([0.299, 0.587, 0.114]))


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return f"#{int(r):02x}{int(g):02x}{int(b):02x}"

