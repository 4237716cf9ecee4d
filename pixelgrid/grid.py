"""Per-pixel paint-by-number grid generation."""

import numpy as np
import typer
from typing import Any, Dict, List, Optional, Sequence
from PIL import Image

from pixelgrid.colors import TRANSPARENT_COLOR, Color, luma_array
from pixelgrid.extract import DEFAULT_ALPHA_THRESHOLD
from pixelgrid.types import TRANSPARENT_NUMBER, Grid, GridCell, PaletteEntry


def _transparent_cell(row: int, col: int, original: Color) -> GridCell:
    return GridCell(
        row=row, col=col,
        color=TRANSPARENT_COLOR,
        original_color=original,
        number=TRANSPARENT_NUMBER,
        is_transparent=True,
        revealed=True,
    )


def generate_grid(
    mapped_rgba: np.ndarray,
    palette: Sequence[PaletteEntry],
    original_rgba: Optional[np.ndarray] = None,
    alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD,
    force_transparent: bool = False,
) -> Grid:
    """
    Build one GridCell per pixel of a palette-mapped image.

    Args:
        mapped_rgba (np.ndarray): (H, W, 4) buffer whose opaque pixels already
                                  carry exact palette colors.
        palette (list[PaletteEntry]): The final palette.
        original_rgba (np.ndarray, optional): The pre-quantization buffer, kept on
                                              each cell for grayscale previews.
                                              Defaults to mapped_rgba.
        alpha_threshold (int): Pixels with alpha <= this are transparent.
        force_transparent (bool): Mark every cell transparent (fully transparent images).

    Returns:
        list[list[GridCell]]: height rows of width cells.
    """
    if original_rgba is None:
        original_rgba = mapped_rgba
    if original_rgba.shape != mapped_rgba.shape:
        raise ValueError(
            f"Original buffer shape {original_rgba.shape} does not match mapped shape {mapped_rgba.shape}."
        )

    by_color: Dict[tuple, PaletteEntry] = {}
    for entry in palette:
        by_color.setdefault(entry.color.rgb, entry)  # first entry wins on duplicates

    height, width = mapped_rgba.shape[:2]
    mapped_rows = mapped_rgba.tolist()
    original_rows = original_rgba.tolist()
    grid: Grid = []
    missing = 0
    for row in range(height):
        grid_row: List[GridCell] = []
        for col in range(width):
            r, g, b, a = mapped_rows[row][col]
            orig = original_rows[row][col]
            original_color = Color(orig[0], orig[1], orig[2], orig[3])
            if force_transparent or a <= alpha_threshold:
                grid_row.append(_transparent_cell(row, col, original_color))
                continue
            entry = by_color.get((r, g, b))
            if entry is None:
                missing += 1
                if missing == 1:
                    first_missing = (row, col)
                    typer.secho(
                        f"Warning: pixel ({row}, {col}) color rgb({r},{g},{b}) matches none of the "
                        f"{len(palette)} palette entries; marking it transparent.",
                        fg=typer.colors.YELLOW, err=True
                    )
                grid_row.append(_transparent_cell(row, col, original_color))
                continue
            grid_row.append(GridCell(
                row=row, col=col,
                color=Color(entry.color.r, entry.color.g, entry.color.b, a),
                original_color=original_color,
                number=entry.number,
                is_transparent=False,
                revealed=False,
            ))
        grid.append(grid_row)

    if missing > 1:
        typer.secho(
            f"Warning: {missing} pixels matched none of the {len(palette)} palette entries and were "
            f"marked transparent (first at {first_missing}).",
            fg=typer.colors.YELLOW, err=True
        )
    return grid


def grid_numbers(grid: Grid) -> np.ndarray:
    """(H, W) int array of palette numbers; 0 marks transparent cells."""
    return np.array([[cell.number for cell in row] for row in grid], dtype=np.int32).reshape(
        len(grid), len(grid[0]) if grid else 0
    )


def grid_number_counts(grid: Grid) -> Dict[int, int]:
    """Opaque cell count per palette number."""
    numbers = grid_numbers(grid)
    values, counts = np.unique(numbers[numbers != TRANSPARENT_NUMBER], return_counts=True)
    return {int(v): int(c) for v, c in zip(values, counts)}


def grid_to_dict(grid: Grid) -> Dict[str, Any]:
    height = len(grid)
    width = len(grid[0]) if grid else 0
    return {
        "width": width,
        "height": height,
        "cells": [[cell.to_dict() for cell in row] for row in grid],
    }


def grayscale_preview(grid: Grid) -> Image.Image:
    """
    Render a grid the way an unfinished puzzle looks: revealed cells in their
    palette color, unrevealed cells as the grayscale of the original pixel,
    transparent cells left clear.
    """
    height = len(grid)
    width = len(grid[0]) if grid else 0
    out = np.zeros((height, width, 4), dtype=np.uint8)
    if height == 0 or width == 0:
        return Image.fromarray(out, "RGBA")

    originals = np.array([[cell.original_color.rgb for cell in row] for row in grid], dtype=np.int64)
    gray = luma_array(originals.reshape(-1, 3)).reshape(height, width).clip(0, 255)
    for row in grid:
        for cell in row:
            if cell.is_transparent:
                continue
            if cell.revealed:
                out[cell.row, cell.col] = (cell.color.r, cell.color.g, cell.color.b, 255)
            else:
                level = gray[cell.row, cell.col]
                out[cell.row, cell.col] = (level, level, level, 255)
    return Image.fromarray(out, "RGBA")
