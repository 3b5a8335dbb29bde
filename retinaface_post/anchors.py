"""
Prior box (anchor) generation for RetinaFace.

Responsibility:
    Build the fixed grid of normalized prior boxes the network regresses
    against, and cache one grid per distinct input size.

Hard-coded:
    - Default scale levels: strides (8, 16, 32) with min sizes
      (16, 32), (64, 128), (256, 512). These are baked into the trained
      regression targets and must match the exported model.

Ordering:
    Anchors are emitted level by level (ascending stride), then cell by
    cell in row-major order, then one anchor per min size in list order.
    The raw output buffers carry no anchor identifiers, so this order IS
    the indexing contract with the network.
"""

import logging
import math
import threading
from typing import Dict, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIZES: Tuple[Tuple[int, ...], ...] = ((16, 32), (64, 128), (256, 512))
DEFAULT_STEPS: Tuple[int, ...] = (8, 16, 32)


def generate_anchors(
    min_sizes: Sequence[Sequence[int]],
    steps: Sequence[int],
    input_height: int,
    input_width: int,
    clip: bool = False,
) -> np.ndarray:
    """Generate the prior boxes for one input size.

    Args:
        min_sizes: Anchor side lengths (pixels) per scale level.
        steps: Stride (pixels between adjacent cells) per scale level.
        input_height: Network input height in pixels.
        input_width: Network input width in pixels.
        clip: Clamp every coordinate to [0, 1].

    Returns:
        A float64 array of shape (N, 4) holding [cx, cy, w, h] rows,
        normalized to the input width/height.

    Raises:
        ValueError: If min_sizes and steps are not paired one-to-one.
    """
    if len(min_sizes) != len(steps):
        raise ValueError(
            f"min_sizes and steps must have the same number of levels, "
            f"got {len(min_sizes)} and {len(steps)}."
        )

    levels = []
    for step, sizes in zip(steps, min_sizes):
        feat_h = math.ceil(input_height / step)
        feat_w = math.ceil(input_width / step)

        rows, cols = np.meshgrid(np.arange(feat_h), np.arange(feat_w), indexing="ij")
        cx = (cols.ravel() + 0.5) * step / input_width
        cy = (rows.ravel() + 0.5) * step / input_height

        per_size = [
            np.stack(
                [
                    cx,
                    cy,
                    np.full_like(cx, size / input_width),
                    np.full_like(cy, size / input_height),
                ],
                axis=1,
            )
            for size in sizes
        ]
        if not per_size:
            continue

        # (cells, sizes, 4) -> cell-major, size-minor
        levels.append(np.stack(per_size, axis=1).reshape(-1, 4))

    if not levels:
        return np.empty((0, 4), dtype=np.float64)

    anchors = np.concatenate(levels, axis=0).astype(np.float64, copy=False)
    if clip:
        anchors = np.clip(anchors, 0.0, 1.0)
    return anchors


class AnchorCache:
    """Owned, thread-safe cache of prior grids keyed by (width, height).

    The first request for a given size generates the grid under a lock;
    later requests return the same read-only array without locking.

    Usage:
        cache = AnchorCache()
        priors = cache.get(640, 640)   # shape (16800, 4)
    """

    def __init__(
        self,
        min_sizes: Sequence[Sequence[int]] = DEFAULT_MIN_SIZES,
        steps: Sequence[int] = DEFAULT_STEPS,
        clip: bool = False,
    ) -> None:
        if len(min_sizes) != len(steps):
            raise ValueError(
                f"min_sizes and steps must have the same number of levels, "
                f"got {len(min_sizes)} and {len(steps)}."
            )
        self._min_sizes = tuple(tuple(int(s) for s in level) for level in min_sizes)
        self._steps = tuple(int(s) for s in steps)
        self._clip = bool(clip)
        self._grids: Dict[Tuple[int, int], np.ndarray] = {}
        self._lock = threading.Lock()

    def get(self, width: int, height: int) -> np.ndarray:
        """Return the prior grid for an input of the given size."""
        key = (int(width), int(height))
        grid = self._grids.get(key)
        if grid is not None:
            return grid

        with self._lock:
            grid = self._grids.get(key)
            if grid is None:
                grid = generate_anchors(
                    self._min_sizes, self._steps, key[1], key[0], clip=self._clip
                )
                grid.setflags(write=False)
                self._grids[key] = grid
                logger.debug(
                    "Generated %d anchors for input %dx%d", grid.shape[0], key[0], key[1]
                )
        return grid

    def clear(self) -> None:
        with self._lock:
            self._grids.clear()

    def __contains__(self, key: Tuple[int, int]) -> bool:
        return key in self._grids

    def __len__(self) -> int:
        return len(self._grids)
