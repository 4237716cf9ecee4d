import typer
from pixelgrid import legend, file_utils, pipeline, extract, grid as grid_tools
from pixelgrid.quantize import Algorithm
from pixelgrid.types import InputRejected, MAX_COLORS
from pathlib import Path
from PIL import Image, UnidentifiedImageError
from typing import Optional, List, Dict
from enum import Enum

import traceback
import sys

import rich.traceback


class PBNFile(Enum):
    QUANTIZED_GUIDE = "quantized_guide"
    PALETTE_LEGEND = "palette_legend"
    GRID_DATA = "grid_data"
    PREVIEW = "preview"

# Map PBNFile enum members to their base filenames
PBN_FILE_BASENAMES: Dict[PBNFile, str] = {
    PBNFile.QUANTIZED_GUIDE: "pbn-guide_quantized.png",
    PBNFile.PALETTE_LEGEND: "pbn-palette_legend.png",
    PBNFile.GRID_DATA: "pbn-grid.json",
    PBNFile.PREVIEW: "pbn-preview.png",
}

PRESETS: Dict[str, Dict[str, int]] = {
    "beginner": {"num_colors": 8},
    "intermediate": {"num_colors": 16},
    "master": {"num_colors": 32},
}


def validate_output_dir(
    output_dir: Path, overwrite: bool = False, expect: Optional[List[PBNFile]] = None,
) -> Dict[PBNFile, Path]:
    files_to_check_for_clobber = [output_dir / PBN_FILE_BASENAMES[key] for key in (expect or [])]

    if not overwrite and files_to_check_for_clobber:
        clobbered_files_found = [str(p) for p in files_to_check_for_clobber if p.exists()]
        if clobbered_files_found:
            typer.secho("Error: Files already exist:", fg=typer.colors.RED)
            for path_str in clobbered_files_found: typer.secho(f"  {path_str}", fg=typer.colors.RED)
            typer.secho("Use --yes (-y) to overwrite.", fg=typer.colors.YELLOW); raise typer.Exit(code=1)

    return {key: output_dir / name for key, name in PBN_FILE_BASENAMES.items()}


def pbn_cli(
    input_path: Path = typer.Argument(
        ...,
        help="Input image file (e.g., image.png).",
        metavar="INPUT_FILE",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    output_dir: Path = typer.Argument(
        ...,
        help="Directory for output files. Will be created if it doesn't exist.",
        metavar="OUTPUT_DIRECTORY",
        file_okay=False, dir_okay=True, writable=True, resolve_path=True,
    ),
    # --- Palette Options ---
    preset: Optional[str] = typer.Option(
        None, help="Preset complexity level: beginner, intermediate, master."
    ),
    num_colors: Optional[int] = typer.Option(
        None, "--num-colors", min=1, max=MAX_COLORS,
        help=f"Maximum number of palette colors (1-{MAX_COLORS}). Default: 16."
    ),
    algorithm: Algorithm = typer.Option(
        Algorithm.KMEANS, "--algorithm", case_sensitive=False,
        help="Quantization algorithm used when the image has more colors than the budget."
    ),
    alpha_threshold: int = typer.Option(
        extract.DEFAULT_ALPHA_THRESHOLD, "--alpha-threshold", min=0, max=255,
        help="Pixels with alpha at or below this value are transparent. Default: 128."
    ),
    levels: int = typer.Option(
        8, "--levels", min=2, max=256, help="Levels per channel for the 'uniform' algorithm. Default: 8."
    ),
    seed: Optional[int] = typer.Option(
        None, "--seed", help="Random seed for k-means seeding (reproducible palettes)."
    ),
    max_iterations: int = typer.Option(
        20, "--max-iterations", min=1, help="Iteration cap for k-means. Default: 20."
    ),
    convergence_threshold: int = typer.Option(
        1, "--convergence-threshold", min=0,
        help="k-means stops when at most this many pixels change cluster. Default: 1."
    ),
    # --- Input Options ---
    max_size: int = typer.Option(
        800, "--max-size", min=1, help="Downscale the input so neither side exceeds this. Default: 800px."
    ),
    # --- Legend and Output Options ---
    font_path: Optional[Path] = typer.Option(
        None, "--font-path", help="Path to a .ttf font file for the legend.",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    swatch_size: int = typer.Option(40, "--swatch-size", min=10, help="Legend swatch size. Default: 40px."),
    skip_legend: bool = typer.Option(False, "--skip-legend", help="Skip generating palette legend."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files."),
):
    """
    Generates a numbered palette and pixel grid for a paint-by-number game.
    """
    command_line_str = " ".join(sys.argv)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        typer.echo(f"Using output directory: {output_dir}")
    except OSError as e:
        typer.secho(f"Error creating output directory {output_dir}: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    expected_outputs: List[PBNFile] = [PBNFile.QUANTIZED_GUIDE, PBNFile.GRID_DATA, PBNFile.PREVIEW]
    if not skip_legend:
        expected_outputs.append(PBNFile.PALETTE_LEGEND)
    output_paths = validate_output_dir(output_dir, overwrite=yes, expect=expected_outputs)

    effective_num_colors = num_colors
    if preset:
        if preset not in PRESETS:
            typer.secho(f"Error: Unknown preset '{preset}'. Choose from: {', '.join(PRESETS)}.", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        typer.echo(f"Applying preset complexity: '{preset}'")
        if effective_num_colors is None: effective_num_colors = PRESETS[preset]["num_colors"]
    if effective_num_colors is None: effective_num_colors = 16

    typer.echo(f"Palette will use at most {effective_num_colors} colors ({algorithm.value}).")

    try:
        with Image.open(input_path) as img:
            source_image = extract.resize_to_fit(img.convert("RGBA"), max_size)
    except (FileNotFoundError, UnidentifiedImageError) as e:
        typer.secho(f"Error opening image {input_path}: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)
    typer.echo(f"Processing {source_image.width}x{source_image.height} pixels.")

    options = pipeline.QuantizeOptions(
        num_colors=effective_num_colors,
        alpha_threshold=alpha_threshold,
        algorithm=algorithm,
        levels=levels,
        max_iterations=max_iterations,
        convergence_threshold=convergence_threshold,
        random_state=seed,
    )
    try:
        result = pipeline.process_image(source_image, options)
    except InputRejected as e:
        typer.secho(f"Image rejected: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    if result.is_fully_transparent:
        typer.secho("Image is fully transparent: empty palette, nothing to paint.", fg=typer.colors.YELLOW)
    elif result.path == "direct":
        typer.echo(f"Image already has {len(result.palette)} colors; palette built without quantization.")
    else:
        typer.echo(f"Quantized {result.palette_result.distinct_colors} colors down to {len(result.palette)}.")

    metadata = {
        "SourceImage": str(input_path),
        "NumColorsTarget": str(effective_num_colors),
        "NumColorsActual": str(len(result.palette)),
        "Algorithm": algorithm.value,
        "PalettePath": result.path,
        "Seed": str(seed),
    }

    quantized_path = output_paths[PBNFile.QUANTIZED_GUIDE]
    file_utils.save_pbn_png(
        result.quantized_image(), quantized_path,
        command_line_invocation=command_line_str,
        additional_metadata={**metadata, "PbN-FileType": "Quantized Guide"},
    )
    typer.echo(f"Quantized guide saved to: {quantized_path}")

    preview_path = output_paths[PBNFile.PREVIEW]
    file_utils.save_pbn_png(
        grid_tools.grayscale_preview(result.grid), preview_path,
        command_line_invocation=command_line_str,
        additional_metadata={**metadata, "PbN-FileType": "Unrevealed Preview"},
    )
    typer.echo(f"Preview saved to: {preview_path}")

    grid_path = output_paths[PBNFile.GRID_DATA]
    file_utils.save_grid_json(
        grid_path, result.palette, result.grid, result.is_fully_transparent,
        metadata={**metadata, "PbN-FileType": "Game Grid"},
    )
    typer.echo(f"Grid data saved to: {grid_path}")

    if not skip_legend:
        try:
            legend_image = legend.create_legend_image(
                result.palette,
                font_path=str(font_path) if font_path else None,
                swatch_size=swatch_size,
            )
            if legend_image:
                legend_path = output_paths[PBNFile.PALETTE_LEGEND]
                file_utils.save_pbn_png(
                    legend_image, legend_path,
                    command_line_invocation=command_line_str,
                    additional_metadata={**metadata, "PbN-FileType": "Palette Legend", "SwatchSize": str(swatch_size)},
                )
                typer.echo(f"Palette legend saved to: {legend_path}")
            else:
                typer.secho("Warning: Palette legend not generated (empty palette).", fg=typer.colors.YELLOW)
        except OSError as e:
            typer.secho(f"Error generating or saving palette legend: {e}", fg=typer.colors.RED)
            traceback.print_exc()

    typer.secho("\nProcessing complete!", fg=typer.colors.GREEN)
    typer.echo(f"Outputs in: {output_dir.resolve()}")


def main():
    rich.traceback.install(show_locals=False, suppress=[typer]) # type: ignore
    typer.run(pbn_cli)


if __name__ == "__main__":
    main()
