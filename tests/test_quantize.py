import numpy as np
import pytest
from pixelgrid import quantize
from pixelgrid.palette_tools import nearest_color_index, palette_colors
from pixelgrid.quantize import Algorithm
from pixelgrid.types import ColorBox, DirectResult, InputRejected, QuantizedResult


def spread_pixels(num_pixels=1000, num_colors=200, seed=0):
    """num_colors distinct colors spread uniformly over num_pixels pixels."""
    rng = np.random.RandomState(seed)
    colors = set()
    while len(colors) < num_colors:
        colors.add(tuple(int(v) for v in rng.randint(0, 256, size=3)))
    colors = np.array(sorted(colors), dtype=np.int64)
    return colors[np.arange(num_pixels) % num_colors]


def test_kmeans_palette_respects_budget_and_counts():
    pixels = spread_pixels(1000, 200)

    palette, iterations = quantize.kmeans_palette(pixels, 16, random_state=7)

    assert 1 <= len(palette) <= 16
    assert sum(e.count for e in palette) == 1000
    assert [e.number for e in palette] == list(range(1, len(palette) + 1))
    assert 1 <= iterations <= quantize.MAX_ITERATIONS
    brightness = [e.brightness for e in palette]
    assert brightness == sorted(brightness)


def test_kmeans_palette_is_reproducible_with_seed():
    pixels = spread_pixels(600, 90, seed=4)

    first, _ = quantize.kmeans_palette(pixels, 8, random_state=123)
    second, _ = quantize.kmeans_palette(pixels, 8, random_state=123)

    assert first == second


def test_kmeans_palette_accepts_random_state_instance():
    pixels = spread_pixels(300, 40, seed=2)
    palette, _ = quantize.kmeans_palette(pixels, 5, random_state=np.random.RandomState(5))
    assert len(palette) <= 5


def test_kmeans_terminates_on_identical_pixels():
    pixels = np.tile([[12, 34, 56]], (100, 1))

    palette, iterations = quantize.kmeans_palette(pixels, 4, random_state=0)

    assert iterations <= quantize.MAX_ITERATIONS
    assert len(palette) == 1
    assert palette[0].color.rgb == (12, 34, 56)
    assert palette[0].count == 100


def test_kmeans_iteration_cap_is_configurable():
    pixels = spread_pixels(500, 120, seed=9)
    _, iterations = quantize.kmeans_palette(pixels, 10, random_state=1, max_iterations=1)
    assert iterations == 1


def test_kmeans_separates_obvious_clusters():
    dark = np.array([[0, 0, 0], [2, 2, 2], [4, 4, 4]] * 10)
    light = np.array([[250, 250, 250], [252, 252, 252], [254, 254, 254]] * 10)
    pixels = np.vstack([dark, light])

    palette, _ = quantize.kmeans_palette(pixels, 2, random_state=0)

    assert [e.color.rgb for e in palette] == [(2, 2, 2), (252, 252, 252)]
    assert [e.count for e in palette] == [30, 30]


@pytest.mark.parametrize("seed", range(40))
def test_kmeans_counts_agree_with_nearest_palette_color_on_ties(seed):
    # (1, 0, 0) sits exactly between the two clusters
    pixels = np.array([[0, 0, 0]] * 50 + [[2, 0, 0]] * 50 + [[1, 0, 0]])

    palette, _ = quantize.kmeans_palette(pixels, 2, random_state=seed)

    nearest = nearest_color_index(pixels, palette_colors(palette))
    mapped_counts = np.bincount(nearest, minlength=len(palette)).tolist()
    assert [e.count for e in palette] == mapped_counts


def test_has_converged():
    old = np.array([0, 1, 1, 2])
    assert not quantize.has_converged(None, old)
    assert quantize.has_converged(old, np.array([0, 1, 1, 0]), threshold=1)
    assert not quantize.has_converged(old, np.array([1, 1, 1, 0]), threshold=1)
    assert quantize.has_converged(old, np.array([1, 1, 1, 0]), threshold=2)


def test_update_centroids_reseeds_empty_cluster():
    pixels = np.array([[10, 10, 10], [20, 20, 20], [31, 31, 31]])
    assignments = np.array([0, 0, 0])

    centroids = quantize.update_centroids(pixels, assignments, 2, random_state=0)

    assert centroids[0].tolist() == [20, 20, 20]
    assert centroids[1].tolist() in pixels.tolist()


def test_update_centroids_rounds_half_up():
    pixels = np.array([[0, 0, 0], [1, 3, 5]])
    centroids = quantize.update_centroids(pixels, np.array([0, 0]), 1)
    assert centroids[0].tolist() == [1, 2, 3]


def test_split_box_cuts_at_count_median_of_longest_channel():
    box = ColorBox(np.array([[30, 0, 0], [0, 0, 0], [20, 0, 0], [10, 0, 0], [40, 1, 1]]))

    low, high = quantize.split_box(box)

    assert low.pixels.tolist() == [[0, 0, 0], [10, 0, 0]]
    assert high.pixels.tolist() == [[20, 0, 0], [30, 0, 0], [40, 1, 1]]
    assert low.max.tolist() == [10, 0, 0]
    assert high.min.tolist() == [20, 0, 0]
    # Children own their pixels
    low.pixels[0, 0] = 99
    assert box.pixels.min() == 0


def test_split_box_prefers_later_channel_on_tie():
    box = ColorBox(np.array([[0, 0, 9], [9, 0, 0], [5, 0, 5]]))
    low, _ = quantize.split_box(box)
    assert low.pixels.tolist() == [[9, 0, 0]]


def test_find_largest_box_skips_unsplittable_boxes():
    boxes = [
        ColorBox(np.array([[200, 200, 200]])),
        ColorBox(np.array([[5, 5, 5], [5, 5, 5]])),
        ColorBox(np.array([[0, 0, 0], [10, 10, 10]])),
        ColorBox(np.array([[0, 0, 0], [50, 50, 50]])),
    ]
    assert quantize.find_largest_box(boxes) == 3
    assert quantize.find_largest_box(boxes[:2]) is None


def test_median_cut_palette_is_deterministic_and_bounded():
    pixels = spread_pixels(1000, 200, seed=11)

    first = quantize.median_cut_palette(pixels, 16)
    second = quantize.median_cut_palette(pixels, 16)

    assert first == second
    assert len(first) == 16
    assert sum(e.count for e in first) == 1000
    assert [e.number for e in first] == list(range(1, 17))


def test_median_cut_palette_flat_channel_still_splits():
    pixels = np.array([[0, 0, 0], [10, 0, 0], [20, 0, 0], [30, 0, 0]])

    palette = quantize.median_cut_palette(pixels, 2)

    assert [e.color.rgb for e in palette] == [(5, 0, 0), (25, 0, 0)]
    assert [e.count for e in palette] == [2, 2]


def test_median_cut_numbers_boxes_in_split_order():
    pixels = np.array([[0, 0, 0], [10, 200, 200], [255, 0, 0], [255, 0, 10]])

    palette = quantize.median_cut_palette(pixels, 3)

    # red splits first; the dark half then splits on blue and keeps its slot
    assert [e.color.rgb for e in palette] == [(0, 0, 0), (10, 200, 200), (255, 0, 5)]
    assert [e.count for e in palette] == [1, 1, 2]
    assert [e.number for e in palette] == [1, 2, 3]

    palette = quantize.median_cut_palette(pixels, 4)

    assert [e.color.rgb for e in palette] == [(0, 0, 0), (10, 200, 200), (255, 0, 0), (255, 0, 10)]


def test_median_cut_stops_early_when_nothing_splits():
    pixels = np.array([[1, 1, 1]] * 5 + [[200, 200, 200]] * 5)
    palette = quantize.median_cut_palette(pixels, 8)
    assert len(palette) == 2


def test_uniform_levels_values():
    pixels = np.array([[0, 18, 19], [100, 255, 128]])
    rounded = quantize.uniform_levels(pixels, 8)
    assert rounded.tolist() == [[0, 0, 36], [109, 255, 146]]


def test_uniform_levels_rejects_single_level():
    with pytest.raises(ValueError):
        quantize.uniform_levels(np.array([[1, 2, 3]]), 1)


def test_uniform_palette_tallies_rounded_colors():
    pixels = np.array([[1, 1, 1], [2, 2, 2], [250, 250, 250]])
    palette = quantize.uniform_palette(pixels, 2)
    assert [(e.color.rgb, e.count) for e in palette] == [((0, 0, 0), 2), ((255, 255, 255), 1)]


def test_select_palette_takes_direct_path_when_colors_fit():
    pixels = np.array([[1, 2, 3], [4, 5, 6], [1, 2, 3]])

    result = quantize.select_palette(pixels, 4)

    assert isinstance(result, DirectResult)
    assert result.distinct_colors == 2
    assert len(result.palette) == 2


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_select_palette_quantizes_when_colors_exceed_budget(algorithm):
    pixels = spread_pixels(400, 100, seed=5)

    result = quantize.select_palette(pixels, 6, algorithm, random_state=0)

    assert isinstance(result, QuantizedResult)
    assert result.algorithm == algorithm.value
    assert sum(e.count for e in result.palette) == 400
    if algorithm is not Algorithm.UNIFORM:
        assert len(result.palette) <= 6


def test_select_palette_rejects_too_many_colors_before_clustering(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("quantizer should not run")

    monkeypatch.setattr(quantize, "kmeans_palette", fail)
    pixels = spread_pixels(130, 130)

    with pytest.raises(InputRejected, match="too many colors"):
        quantize.select_palette(pixels, 16)


@pytest.mark.parametrize("budget", [0, -1, 129, 2.5])
def test_select_palette_rejects_bad_budget(budget):
    with pytest.raises(InputRejected):
        quantize.select_palette(np.array([[0, 0, 0]]), budget)


def test_select_palette_rejects_unknown_algorithm():
    with pytest.raises(ValueError):
        quantize.select_palette(spread_pixels(50, 20), 4, "octree")
