"""Image -> palette + grid orchestration."""

import numpy as np
import typer
from dataclasses import dataclass
from typing import Optional, Union
from PIL import Image

from pixelgrid.extract import DEFAULT_ALPHA_THRESHOLD, PixelBuffer, extract_pixels
from pixelgrid.grid import generate_grid
from pixelgrid.palette_tools import map_buffer_to_palette, palette_total
from pixelgrid.quantize import (
    CONVERGENCE_THRESHOLD, DEFAULT_LEVELS, DEFAULT_NUM_COLORS, MAX_ITERATIONS,
    Algorithm, RandomStateLike, select_palette, validate_num_colors,
)
from pixelgrid.types import DirectResult, Grid, Palette, PaletteResult


@dataclass
class QuantizeOptions:
    num_colors: int = DEFAULT_NUM_COLORS
    alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD
    algorithm: Union[Algorithm, str] = Algorithm.KMEANS
    levels: int = DEFAULT_LEVELS
    max_iterations: int = MAX_ITERATIONS
    convergence_threshold: int = CONVERGENCE_THRESHOLD
    random_state: RandomStateLike = None


@dataclass
class ProcessResult:
    palette: Palette
    grid: Grid
    quantized: np.ndarray  # (H, W, 4) palette-mapped buffer
    is_fully_transparent: bool
    path: str  # "direct", "quantized" or "transparent"
    width: int
    height: int
    palette_result: Optional[PaletteResult] = None

    @property
    def opaque_pixel_count(self) -> int:
        return palette_total(self.palette)

    def quantized_image(self) -> Image.Image:
        return Image.fromarray(self.quantized, "RGBA")


def process_buffer(buffer: PixelBuffer, options: Optional[QuantizeOptions] = None) -> ProcessResult:
    """
    Run the whole pipeline on a decoded buffer.

    Raises:
        InputRejected: Too many distinct colors, or a palette budget out of range.
    """
    options = options or QuantizeOptions()
    num_colors = validate_num_colors(options.num_colors)
    algorithm = Algorithm(options.algorithm)
    threshold = options.alpha_threshold

    pixels, _ = extract_pixels(buffer, threshold)
    original = buffer.rgba

    if pixels.shape[0] == 0:
        grid = generate_grid(original, [], original_rgba=original,
                             alpha_threshold=threshold, force_transparent=True)
        return ProcessResult(
            palette=[], grid=grid, quantized=original.copy(), is_fully_transparent=True,
            path="transparent", width=buffer.width, height=buffer.height,
        )

    result = select_palette(
        pixels, num_colors, algorithm,
        levels=options.levels,
        random_state=options.random_state,
        max_iterations=options.max_iterations,
        convergence_threshold=options.convergence_threshold,
    )
    palette = result.palette

    if isinstance(result, DirectResult):
        mapped = original.copy()
        path = "direct"
    else:
        mapped = map_buffer_to_palette(original, palette, threshold)
        path = "quantized"
        if len(palette) > num_colors:
            typer.secho(
                f"Warning: '{result.algorithm}' produced {len(palette)} colors, "
                f"more than the requested {num_colors}.",
                fg=typer.colors.YELLOW, err=True
            )

    grid = generate_grid(mapped, palette, original_rgba=original, alpha_threshold=threshold)
    return ProcessResult(
        palette=palette, grid=grid, quantized=mapped, is_fully_transparent=False,
        path=path, width=buffer.width, height=buffer.height, palette_result=result,
    )


def process_image(image: Image.Image, options: Optional[QuantizeOptions] = None) -> ProcessResult:
    """Convenience wrapper: decode a Pillow image to RGBA and process it."""
    return process_buffer(PixelBuffer.from_image(image), options)
