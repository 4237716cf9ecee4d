import json
import subprocess
import sys
from pathlib import Path
from PIL import Image, ImageDraw

REPO_ROOT = Path(__file__).resolve().parent.parent
CLI = str(REPO_ROOT / "pbnpixel.py")


def create_dummy_image(path: Path):
    img = Image.new("RGB", (64, 64), color=(150, 120, 200))
    draw = ImageDraw.Draw(img)
    draw.rectangle([(10, 10), (30, 30)], fill=(200, 50, 50))
    draw.rectangle([(35, 35), (60, 60)], fill=(50, 200, 50))
    img.save(path)


def run_cli(*args):
    return subprocess.run([sys.executable, CLI, *args], capture_output=True, text=True, cwd=REPO_ROOT)


def test_pbnpixel_cli_with_all_outputs(tmp_path):
    input_image = tmp_path / "dummy_input.png"
    create_dummy_image(input_image)
    output_dir = tmp_path / "output"

    result = run_cli(str(input_image), str(output_dir), "--num-colors", "3")

    assert result.returncode == 0, f"CLI failed: {result.stderr}"
    for filename in ["pbn-guide_quantized.png", "pbn-palette_legend.png", "pbn-grid.json", "pbn-preview.png"]:
        assert (output_dir / filename).exists(), f"Expected output file not found: {filename}"
    assert "Processing complete" in result.stdout

    with open(output_dir / "pbn-grid.json") as f:
        data = json.load(f)
    assert len(data["palette"]) == 3
    assert data["grid"]["width"] == 64


def test_pbnpixel_cli_refuses_to_overwrite(tmp_path):
    input_image = tmp_path / "dummy_input.png"
    create_dummy_image(input_image)
    output_dir = tmp_path / "output"

    assert run_cli(str(input_image), str(output_dir), "--seed", "1").returncode == 0
    second = run_cli(str(input_image), str(output_dir), "--seed", "1")
    assert second.returncode == 1
    assert "already exist" in second.stdout
    assert run_cli(str(input_image), str(output_dir), "--seed", "1", "-y").returncode == 0


def test_pbnpixel_cli_rejects_too_many_colors(tmp_path):
    img = Image.new("RGB", (200, 1))
    for x in range(200):
        img.putpixel((x, 0), (x, 0, 0))
    input_image = tmp_path / "gradient.png"
    img.save(input_image)

    result = run_cli(str(input_image), str(tmp_path / "out"))

    assert result.returncode == 1
    assert "too many colors" in result.stdout


def test_pbnpixel_cli_help_output():
    result = run_cli("--help")
    assert result.returncode == 0
    assert "usage:" in result.stdout.lower()
