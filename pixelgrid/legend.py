from PIL import Image, ImageDraw, ImageFont
import os
from typing import Optional, Sequence

from pixelgrid.colors import get_grayscale
from pixelgrid.types import PaletteEntry


def _load_font(font_path: Optional[str], font_size: int):
    loaded_font = None
    try:
        if font_path and os.path.isfile(font_path):
            loaded_font = ImageFont.truetype(font_path, font_size)
    except IOError:
        pass # Fall through to the default font

    if not loaded_font:
        try:
            loaded_font = ImageFont.load_default(size=font_size)
        except TypeError: # Older Pillow versions do not take a size
            loaded_font = ImageFont.load_default()
    return loaded_font


def create_legend_image(
    palette: Sequence[PaletteEntry],
    font_path: Optional[str] = None,
    font_size: int = 14,
    swatch_size: int = 40,
    padding: int = 10
) -> Optional[Image.Image]:
    """
    Creates a palette legend image: one numbered swatch per palette entry.

    Args:
        palette (list[PaletteEntry]): The numbered palette.
        font_path (str, optional): Path to a TTF font file.
        font_size (int): Font size for the palette numbers.
        swatch_size (int): Width/height of each color swatch.
        padding (int): Space around elements and between swatches.

    Returns:
        PIL.Image.Image: The legend, or None for an empty palette.
    """
    num_colors = len(palette)
    if num_colors == 0:
        return None

    width = (swatch_size * num_colors) + (padding * (num_colors + 1))
    height = swatch_size + (2 * padding)

    image = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(image)
    font = _load_font(font_path, font_size)

    for idx, entry in enumerate(palette):
        x_start = padding + idx * (swatch_size + padding)
        y_start = padding
        fill_color = entry.color.rgb

        draw.rectangle(
            [x_start, y_start, x_start + swatch_size, y_start + swatch_size],
            fill=fill_color,
            outline=(0, 0, 0)
        )

        text_content = str(entry.number)
        bbox = draw.textbbox((0, 0), text_content, font=font)
        text_w = bbox[2] - bbox[0]
        text_h = bbox[3] - bbox[1]

        # Center within the swatch, offsetting by the glyph's own origin
        text_x = x_start + (swatch_size - text_w) / 2.0 - bbox[0]
        text_y = y_start + (swatch_size - text_h) / 2.0 - bbox[1]

        # Dark swatches get white numbers
        text_fill = (255, 255, 255) if get_grayscale(*fill_color) < 128 else (0, 0, 0)
        draw.text((text_x, text_y), text_content, fill=text_fill, font=font)

    return image
