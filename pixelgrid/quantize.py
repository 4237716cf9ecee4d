import numpy as np
from enum import Enum
from typing import List, Optional, Tuple, Union
from sklearn.cluster import kmeans_plusplus
from sklearn.utils import check_random_state

from pixelgrid.colors import luma_array, round_half_up
from pixelgrid.palette_tools import (
    count_distinct_colors, build_direct_palette, enumerate_palette,
    nearest_color_index, number_palette,
)
from pixelgrid.types import (
    MAX_COLORS, ColorBox, DirectResult, InputRejected, Palette, PaletteResult, QuantizedResult,
)

DEFAULT_NUM_COLORS = 16
MAX_ITERATIONS = 20
CONVERGENCE_THRESHOLD = 1  # Max pixels allowed to switch cluster in a converged pass
DEFAULT_LEVELS = 8

RandomStateLike = Union[None, int, np.random.RandomState]


class Algorithm(str, Enum):
    KMEANS = "kmeans"
    MEDIAN_CUT = "median-cut"
    UNIFORM = "uniform"


def validate_num_colors(num_colors: int) -> int:
    if not isinstance(num_colors, (int, np.integer)) or isinstance(num_colors, bool):
        raise InputRejected(f"Palette budget must be an integer, got {num_colors!r}.")
    if not (1 <= num_colors <= MAX_COLORS):
        raise InputRejected(f"Palette budget {num_colors} is outside the allowed range 1-{MAX_COLORS}.")
    return int(num_colors)


# --- Iterative centroid (k-means) ---

def initialize_centroids(pixels: np.ndarray, k: int, random_state: RandomStateLike = None) -> np.ndarray:
    """
    k-means++ seeding: the first centroid is a uniformly random pixel, each
    following one is drawn with probability proportional to its squared
    distance from the nearest centroid chosen so far.
    """
    rng = check_random_state(random_state)
    centers, _ = kmeans_plusplus(
        np.asarray(pixels, dtype=np.float64), n_clusters=k, random_state=rng, n_local_trials=1
    )
    return round_half_up(centers)


def assign_pixels(pixels: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    return nearest_color_index(pixels, centroids)


def update_centroids(
    pixels: np.ndarray,
    assignments: np.ndarray,
    k: int,
    random_state: RandomStateLike = None
) -> np.ndarray:
    """
    Move each centroid to the rounded mean of its members. A cluster left
    empty is reseeded with a random pixel from the population.
    """
    rng = check_random_state(random_state)
    counts = np.bincount(assignments, minlength=k)
    sums = np.stack(
        [np.bincount(assignments, weights=pixels[:, c], minlength=k) for c in range(3)], axis=1
    )
    centroids = np.empty((k, 3), dtype=np.int64)
    for i in range(k):
        if counts[i] > 0:
            centroids[i] = round_half_up(sums[i] / counts[i])
        else:
            centroids[i] = pixels[rng.randint(pixels.shape[0])]
    return centroids


def has_converged(
    old_assignments: Optional[np.ndarray],
    new_assignments: np.ndarray,
    threshold: int = CONVERGENCE_THRESHOLD
) -> bool:
    if old_assignments is None:
        return False
    changes = int(np.count_nonzero(old_assignments != new_assignments))
    return changes <= threshold


def kmeans_palette(
    pixels: np.ndarray,
    k: int,
    random_state: RandomStateLike = None,
    max_iterations: int = MAX_ITERATIONS,
    convergence_threshold: int = CONVERGENCE_THRESHOLD,
) -> Tuple[Palette, int]:
    """
    Reduce a pixel population to at most k colors with k-means.

    Args:
        pixels (np.ndarray): (N, 3) opaque RGB pixels, N >= k.
        k (int): Number of clusters.
        random_state: None, an int seed or a numpy RandomState. The same seed
                      always yields the same palette.
        max_iterations (int): Hard cap on assignment/update passes.
        convergence_threshold (int): Stop once no more than this many pixels
                                     changed cluster between two passes.

    Returns:
        Tuple[list[PaletteEntry], int]:
            - Palette sorted by brightness; clusters that end up empty are dropped.
            - Number of passes run.
    """
    pixels = np.asarray(pixels, dtype=np.int64).reshape(-1, 3)
    rng = check_random_state(random_state)

    centroids = initialize_centroids(pixels, k, rng)
    assignments: Optional[np.ndarray] = None
    iteration = 0
    converged = False
    while not converged and iteration < max_iterations:
        new_assignments = assign_pixels(pixels, centroids)
        converged = has_converged(assignments, new_assignments, convergence_threshold)
        assignments = new_assignments
        centroids = update_centroids(pixels, assignments, k, rng)
        iteration += 1

    # Put centroids in palette (brightness) order first so that equidistant
    # pixels are credited to the same entry the palette mapper picks.
    centroids = centroids[np.argsort(luma_array(centroids), kind="stable")]
    final_assignments = assign_pixels(pixels, centroids)
    counts = np.bincount(final_assignments, minlength=k)
    keep = counts > 0
    return enumerate_palette(centroids[keep], counts[keep]), iteration


# --- Recursive box split (median cut) ---

def find_largest_box(boxes: List[ColorBox]) -> Optional[int]:
    """
    Index of the box to split next: the largest volume among boxes holding
    more than one pixel and more than one color. Ties go to the box with the
    longer longest side, then to the earlier box. None if nothing can split.
    """
    best_index = None
    best_key = None
    for index, box in enumerate(boxes):
        if len(box) <= 1:
            continue
        ranges = box.ranges
        if ranges.max() == 0:
            continue
        key = (box.volume, int(ranges.max()))
        if best_key is None or key > best_key:
            best_key = key
            best_index = index
    return best_index


def split_box(box: ColorBox) -> Tuple[ColorBox, ColorBox]:
    """
    Split a box at the pixel-count median of its longest channel.

    When two channels share the longest range the later one (b, then g) wins.
    """
    ranges = box.ranges
    channel = 2 - int(np.argmax(ranges[::-1]))
    order = np.argsort(box.pixels[:, channel], kind="stable")
    sorted_pixels = box.pixels[order]
    median_index = len(sorted_pixels) // 2
    return ColorBox(sorted_pixels[:median_index]), ColorBox(sorted_pixels[median_index:])


def box_color(box: ColorBox) -> np.ndarray:
    if len(box) == 0:
        return np.zeros(3, dtype=np.int64)
    return round_half_up(box.pixels.mean(axis=0))


def median_cut_boxes(pixels: np.ndarray, target_colors: int) -> List[ColorBox]:
    boxes = [ColorBox(pixels)]
    while len(boxes) < target_colors:
        index = find_largest_box(boxes)
        if index is None:
            break
        boxes[index:index + 1] = list(split_box(boxes[index]))
    return boxes


def median_cut_palette(pixels: np.ndarray, target_colors: int) -> Palette:
    """
    Deterministic median-cut palette. Entries are numbered in box-list order,
    each colored by the rounded mean of its box and counted by box size.
    """
    boxes = [box for box in median_cut_boxes(pixels, target_colors) if len(box) > 0]
    return enumerate_palette([box_color(box) for box in boxes], [len(box) for box in boxes])


# --- Uniform channel levels ---

def uniform_levels(pixels: np.ndarray, levels: int = DEFAULT_LEVELS) -> np.ndarray:
    """Round each channel to the nearest of `levels` evenly spaced values in 0-255."""
    if levels < 2:
        raise ValueError(f"levels must be >= 2, got {levels}")
    step = 255 / (levels - 1)
    return round_half_up(round_half_up(np.asarray(pixels, dtype=np.float64) / step) * step)


def uniform_palette(pixels: np.ndarray, levels: int = DEFAULT_LEVELS) -> Palette:
    """
    Palette of the level-rounded colors present in the image, sorted by
    brightness. The size is not bounded by any budget.
    """
    rounded = uniform_levels(np.asarray(pixels).reshape(-1, 3), levels)
    colors, counts = count_distinct_colors(rounded)
    return number_palette(colors, counts)


# --- Path selection ---

def select_palette(
    pixels: np.ndarray,
    num_colors: int = DEFAULT_NUM_COLORS,
    algorithm: Union[Algorithm, str] = Algorithm.KMEANS,
    levels: int = DEFAULT_LEVELS,
    random_state: RandomStateLike = None,
    max_iterations: int = MAX_ITERATIONS,
    convergence_threshold: int = CONVERGENCE_THRESHOLD,
) -> PaletteResult:
    """
    Decide between an exact palette and a quantized one, and build it.

    Raises:
        InputRejected: If the budget is out of range or the image has more
                       distinct opaque colors than MAX_COLORS.
        ValueError: If the algorithm is unknown.
    """
    num_colors = validate_num_colors(num_colors)
    algorithm = Algorithm(algorithm)
    pixels = np.asarray(pixels, dtype=np.int64).reshape(-1, 3)

    unique_colors, _ = count_distinct_colors(pixels)
    distinct = int(unique_colors.shape[0])
    if distinct > MAX_COLORS:
        raise InputRejected(f"Image contains too many colors (max {MAX_COLORS} allowed).")

    if distinct <= num_colors:
        return DirectResult(palette=build_direct_palette(pixels), distinct_colors=distinct)

    iterations = 0
    if algorithm is Algorithm.MEDIAN_CUT:
        palette = median_cut_palette(pixels, num_colors)
    elif algorithm is Algorithm.UNIFORM:
        palette = uniform_palette(pixels, levels)
    else:
        palette, iterations = kmeans_palette(
            pixels, num_colors,
            random_state=random_state,
            max_iterations=max_iterations,
            convergence_threshold=convergence_threshold,
        )
    return QuantizedResult(
        palette=palette, distinct_colors=distinct, algorithm=algorithm.value, iterations=iterations
    )
