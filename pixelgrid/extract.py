from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np
from PIL import Image

DEFAULT_ALPHA_THRESHOLD = 128


@dataclass
class PixelBuffer:
    """
    A decoded image: ``width`` x ``height`` pixels, row-major, 4 channels (RGBA).

    ``data`` may be raw bytes or any array-like holding ``width * height * 4``
    values; it is normalized to an (H, W, 4) uint8 array.
    """
    width: int
    height: int
    data: Union[bytes, bytearray, np.ndarray]

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Invalid buffer dimensions {self.width}x{self.height}.")
        if isinstance(self.data, (bytes, bytearray, memoryview)):
            flat = np.frombuffer(bytes(self.data), dtype=np.uint8)
        else:
            flat = np.asarray(self.data).astype(np.uint8, copy=False).reshape(-1)
        expected = self.width * self.height * 4
        if flat.size != expected:
            raise ValueError(
                f"Pixel buffer holds {flat.size} values, expected {expected} "
                f"for a {self.width}x{self.height} RGBA image."
            )
        self.data = flat.reshape((self.height, self.width, 4)).copy()

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        rgba = image.convert("RGBA")
        width, height = rgba.size
        return cls(width, height, np.array(rgba, dtype=np.uint8))

    @property
    def rgba(self) -> np.ndarray:
        return self.data


def opaque_mask(rgba: np.ndarray, alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD) -> np.ndarray:
    """Boolean (H, W) mask of pixels whose alpha is strictly above the threshold."""
    return rgba[..., 3] > alpha_threshold


def extract_pixels(
    buffer: PixelBuffer,
    alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD
) -> Tuple[np.ndarray, int]:
    """
    Collect the opaque pixels of a buffer in scan order.

    Args:
        buffer (PixelBuffer): The decoded image.
        alpha_threshold (int): Pixels with alpha <= this value are transparent.

    Returns:
        Tuple[np.ndarray, int]:
            - (N, 3) int64 array of opaque RGB values, row-major scan order.
            - Number of transparent pixels that were skipped.
    """
    rgba = buffer.rgba
    mask = opaque_mask(rgba, alpha_threshold)
    pixels = rgba[mask][:, :3].astype(np.int64)
    transparent_count = int(mask.size - pixels.shape[0])
    return pixels, transparent_count


def resize_to_fit(image: Image.Image, max_size: int = 800) -> Image.Image:
    """Downscale so neither side exceeds max_size, keeping the aspect ratio."""
    width, height = image.size
    if width <= max_size and height <= max_size:
        return image
    ratio = min(max_size / width, max_size / height)
    new_size = (max(1, round(width * ratio)), max(1, round(height * ratio)))
    return image.resize(new_size, Image.Resampling.LANCZOS)
