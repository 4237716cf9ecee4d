import numpy as np
from typing import Iterable, Sequence, Tuple

from pixelgrid.colors import Color, luma_array
from pixelgrid.extract import DEFAULT_ALPHA_THRESHOLD, opaque_mask
from pixelgrid.types import Palette, PaletteEntry

ASSIGN_BATCH_SIZE = 65536  # Pixels per distance batch; bounds the N x K temporary


def nearest_color_index(pixels: np.ndarray, colors: np.ndarray) -> np.ndarray:
    """
    Index of the nearest color (squared Euclidean RGB distance) for each pixel.

    Ties go to the lowest index. Work is done in fixed-size batches so memory
    stays bounded on large images; the result does not depend on batching.

    Args:
        pixels (np.ndarray): (N, 3) RGB values.
        colors (np.ndarray): (K, 3) candidate RGB values, K >= 1.

    Returns:
        np.ndarray: (N,) int64 indices into colors.
    """
    pixels = np.asarray(pixels, dtype=np.int64).reshape(-1, 3)
    colors = np.asarray(colors, dtype=np.int64).reshape(-1, 3)
    if colors.shape[0] == 0:
        raise ValueError("Cannot map pixels onto an empty palette.")
    nearest = np.empty(pixels.shape[0], dtype=np.int64)
    for start in range(0, pixels.shape[0], ASSIGN_BATCH_SIZE):
        batch = pixels[start:start + ASSIGN_BATCH_SIZE]
        diffs = batch[:, None, :] - colors[None, :, :]
        dists = np.einsum("nkc,nkc->nk", diffs, diffs)
        nearest[start:start + batch.shape[0]] = np.argmin(dists, axis=1)
    return nearest


def palette_colors(palette: Sequence[PaletteEntry]) -> np.ndarray:
    """The palette's RGB values as a (K, 3) int64 array, in palette order."""
    if not palette:
        return np.zeros((0, 3), dtype=np.int64)
    return np.array([entry.color.rgb for entry in palette], dtype=np.int64)


def count_distinct_colors(pixels: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Unique RGB triples among the given pixels, in order of first appearance.

    Returns:
        Tuple[np.ndarray, np.ndarray]: (M, 3) unique colors and their (M,) pixel counts.
    """
    pixels = np.asarray(pixels, dtype=np.int64).reshape(-1, 3)
    if pixels.shape[0] == 0:
        return np.zeros((0, 3), dtype=np.int64), np.zeros(0, dtype=np.int64)
    unique_colors, first_index, counts = np.unique(
        pixels, axis=0, return_index=True, return_counts=True
    )
    order = np.argsort(first_index, kind="stable")
    return unique_colors[order], counts[order]


def number_palette(colors: Iterable, counts: Iterable[int]) -> Palette:
    """
    Build palette entries sorted by ascending brightness and numbered from 1.

    Equal brightness keeps the incoming order.
    """
    colors_arr = np.asarray(list(colors), dtype=np.int64).reshape(-1, 3)
    counts_list = [int(c) for c in counts]
    if colors_arr.shape[0] == 0:
        return []
    order = np.argsort(luma_array(colors_arr), kind="stable")
    return [
        PaletteEntry(color=Color(*(int(v) for v in colors_arr[i])), number=n, count=counts_list[i])
        for n, i in enumerate(order, start=1)
    ]


def enumerate_palette(colors: Iterable, counts: Iterable[int]) -> Palette:
    """Build palette entries numbered 1..N in the given order (no sorting)."""
    return [
        PaletteEntry(color=Color(*(int(v) for v in color)), number=n, count=int(count))
        for n, (color, count) in enumerate(zip(colors, counts), start=1)
    ]


def build_direct_palette(pixels: np.ndarray) -> Palette:
    """
    Lossless palette: one entry per distinct color with its exact pixel frequency.
    """
    unique_colors, counts = count_distinct_colors(pixels)
    return number_palette(unique_colors, counts)


def map_image_to_palette(image_array, palette):
    """
    Map every pixel in the image to the nearest color in the palette.

    Args:
        image_array (np.ndarray): HxWx3 RGB image data
        palette (np.ndarray | list[PaletteEntry]): Nx3 palette array or palette entries

    Returns:
        np.ndarray: Quantized image array of same shape as input (uint8)
    """
    if not isinstance(palette, np.ndarray):
        palette = palette_colors(palette)
    h, w, _ = image_array.shape
    flat = image_array.reshape((-1, 3))

    nearest = nearest_color_index(flat, palette)
    quantized_flat = np.asarray(palette, dtype=np.int64)[nearest]

    return quantized_flat.reshape((h, w, 3)).astype(np.uint8)


def map_buffer_to_palette(
    rgba: np.ndarray,
    palette: Sequence[PaletteEntry],
    alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD
) -> np.ndarray:
    """
    Snap every opaque pixel of an (H, W, 4) buffer to its nearest palette color.

    Opaque pixels come out fully opaque (alpha 255); transparent pixels are
    copied through untouched. Running this on its own output changes nothing.
    """
    mapped = np.array(rgba, dtype=np.uint8, copy=True)
    mask = opaque_mask(mapped, alpha_threshold)
    if not mask.any():
        return mapped
    opaque_rgb = mapped[mask][:, None, :3]  # (N, 1, 3) strip for the image-level mapper
    snapped = np.empty((opaque_rgb.shape[0], 4), dtype=np.uint8)
    snapped[:, :3] = map_image_to_palette(opaque_rgb, palette).reshape(-1, 3)
    snapped[:, 3] = 255
    mapped[mask] = snapped
    return mapped


def palette_total(palette: Sequence[PaletteEntry]) -> int:
    return sum(entry.count for entry in palette)
