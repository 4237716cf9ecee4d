import json
import re
from pathlib import Path
from typing import Any, Dict, Optional, Sequence
from PIL import Image, PngImagePlugin

from pixelgrid.grid import grid_to_dict
from pixelgrid.types import Grid, PaletteEntry

PNG_METADATA_PREFIX = "pbnpixel:"


def _clean_metadata_key(key: str) -> str:
    key_clean = re.sub(r'\s+', '_', key)
    key_clean = re.sub(r'[^a-zA-Z0-9_.-]', '', key_clean)
    if not re.match(r'^[a-zA-Z_]', key_clean): # Must start with letter or underscore
        key_clean = "pbnpixel_" + key_clean
    # tEXt keywords are capped at 79 bytes; leave room for the prefix
    return key_clean[:70]


def save_pbn_png(
    image_to_save: Image.Image,
    output_path: Path,
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None
):
    """
    Saves a PIL Image object as a PNG file, embedding specified metadata.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    png_info = PngImagePlugin.PngInfo()
    if command_line_invocation:
        png_info.add_text(f"{PNG_METADATA_PREFIX}command_line", command_line_invocation)
    png_info.add_text("Software", "pbnpixel")

    if additional_metadata:
        for key, value in additional_metadata.items():
            png_info.add_text(f"{PNG_METADATA_PREFIX}{_clean_metadata_key(key)}", str(value))

    image_to_save.save(output_path, "PNG", pnginfo=png_info)


def build_game_data(
    palette: Sequence[PaletteEntry],
    grid: Grid,
    is_fully_transparent: bool,
    metadata: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    data = {
        "palette": [entry.to_dict() for entry in palette],
        "grid": grid_to_dict(grid),
        "isFullyTransparent": bool(is_fully_transparent),
    }
    if metadata:
        data["metadata"] = {str(k): str(v) for k, v in metadata.items()}
    return data


def save_grid_json(
    output_path: Path,
    palette: Sequence[PaletteEntry],
    grid: Grid,
    is_fully_transparent: bool,
    metadata: Optional[Dict[str, Any]] = None
):
    """Write the palette and grid as JSON for the game/rendering front ends."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    data = build_game_data(palette, grid, is_fully_transparent, metadata)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, separators=(",", ":"))
