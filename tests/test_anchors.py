"""
Tests for the anchor generation module.
"""

import threading

import numpy as np
import pytest

from retinaface_post.anchors import (
    DEFAULT_MIN_SIZES,
    DEFAULT_STEPS,
    AnchorCache,
    generate_anchors,
)


def test_anchor_count_640():
    """The standard 640x640 grid has 16800 priors."""
    anchors = generate_anchors(DEFAULT_MIN_SIZES, DEFAULT_STEPS, 640, 640)
    expected = sum(int(np.ceil(640 / s)) ** 2 * 2 for s in DEFAULT_STEPS)

    assert anchors.shape == (16800, 4)
    assert expected == 16800


def test_generation_is_deterministic():
    """Two calls with identical arguments give byte-identical grids."""
    a = generate_anchors(DEFAULT_MIN_SIZES, DEFAULT_STEPS, 480, 640, clip=True)
    b = generate_anchors(DEFAULT_MIN_SIZES, DEFAULT_STEPS, 480, 640, clip=True)
    assert a.tobytes() == b.tobytes()


def test_first_cells_order():
    """Cell-major, min-size-minor ordering at the first level."""
    anchors = generate_anchors(DEFAULT_MIN_SIZES, DEFAULT_STEPS, 640, 640)

    # cell (0, 0), min size 16 then 32
    assert list(anchors[0]) == pytest.approx([4 / 640, 4 / 640, 16 / 640, 16 / 640])
    assert list(anchors[1]) == pytest.approx([4 / 640, 4 / 640, 32 / 640, 32 / 640])
    # cell (0, 1) follows along the row
    assert list(anchors[2]) == pytest.approx([12 / 640, 4 / 640, 16 / 640, 16 / 640])


def test_levels_follow_each_other():
    """The second level starts right after all first-level anchors."""
    anchors = generate_anchors(DEFAULT_MIN_SIZES, DEFAULT_STEPS, 640, 640)
    first_of_level_two = 80 * 80 * 2

    assert list(anchors[first_of_level_two]) == pytest.approx([8 / 640, 8 / 640, 64 / 640, 64 / 640])


def test_non_square_input():
    """Width and height are normalized independently and rows run along width."""
    anchors = generate_anchors(DEFAULT_MIN_SIZES, DEFAULT_STEPS, 240, 320)

    assert list(anchors[0]) == pytest.approx([4 / 320, 4 / 240, 16 / 320, 16 / 240])
    # 40 columns x 2 sizes per row at stride 8
    assert list(anchors[80]) == pytest.approx([4 / 320, 12 / 240, 16 / 320, 16 / 240])


def test_feature_map_size_rounds_up():
    """A partial cell at the border still gets anchors."""
    anchors = generate_anchors(((16,),), (32,), 100, 100)
    assert anchors.shape == (16, 4)  # ceil(100 / 32) = 4 per side


def test_clip():
    """Clipping clamps oversized priors into [0, 1]."""
    unclipped = generate_anchors(((512,),), (32,), 100, 100)
    clipped = generate_anchors(((512,),), (32,), 100, 100, clip=True)

    assert unclipped[:, 2].max() > 1.0
    assert clipped.min() >= 0.0
    assert clipped.max() <= 1.0


def test_mismatched_levels():
    """min_sizes and steps must pair one-to-one."""
    with pytest.raises(ValueError, match="same number of levels"):
        generate_anchors(((16, 32),), (8, 16), 640, 640)


def test_cache_reuses_grid():
    """A cache hit returns the very same read-only array."""
    cache = AnchorCache()
    first = cache.get(640, 640)
    second = cache.get(640, 640)

    assert first is second
    assert not first.flags.writeable
    assert len(cache) == 1
    assert (640, 640) in cache


def test_cache_keys_by_size():
    """Different input sizes get separate grids."""
    cache = AnchorCache()
    small = cache.get(320, 320)
    large = cache.get(640, 640)

    assert small.shape[0] == 4200
    assert large.shape[0] == 16800
    assert len(cache) == 2

    cache.clear()
    assert len(cache) == 0


def test_cache_concurrent_first_use():
    """Concurrent first requests for one size all see a single grid."""
    cache = AnchorCache()
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(cache.get(640, 480))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 8
    assert all(r is results[0] for r in results)
    assert len(cache) == 1
