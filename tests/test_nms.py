"""
Tests for the non-maximum suppression module.
"""

import numpy as np
import pytest

from retinaface_post.detection import Detection
from retinaface_post.nms import iou, suppress


def _box(x1, y1, x2, y2, confidence=0.9, tag=0.0):
    # tag rides in the landmarks so identical boxes stay distinguishable
    return Detection(x1=x1, y1=y1, x2=x2, y2=y2, confidence=confidence, landmarks=(tag,))


def test_iou_identical():
    assert iou(_box(0, 0, 10, 10), _box(0, 0, 10, 10)) == pytest.approx(1.0)


def test_iou_disjoint():
    assert iou(_box(0, 0, 10, 10), _box(20, 20, 30, 30)) == 0.0


def test_iou_partial():
    """Half-overlapping squares: 50 / 150."""
    assert iou(_box(0, 0, 10, 10), _box(5, 0, 15, 10)) == pytest.approx(1 / 3)


def test_iou_zero_area():
    """Two zero-area boxes give 0, not NaN."""
    assert iou(_box(5, 5, 5, 5), _box(5, 5, 5, 5)) == 0.0


def test_suppress_empty():
    assert suppress([], 0.4) == []


def test_suppress_keeps_best_of_overlap():
    """The lower-scored of two heavily overlapping boxes is dropped."""
    low = _box(0, 0, 10, 10, confidence=0.6)
    high = _box(1, 1, 11, 11, confidence=0.9)
    far = _box(50, 50, 60, 60, confidence=0.7)

    kept = suppress([low, high, far], 0.4)

    assert kept == [high, far]


def test_suppress_threshold_is_strict():
    """IoU equal to the threshold does not suppress."""
    a = _box(0, 0, 10, 10, confidence=0.9)
    b = _box(5, 0, 15, 10, confidence=0.8)

    assert suppress([a, b], 1 / 3) == [a, b]
    assert suppress([a, b], 0.3) == [a]


def test_suppress_ties_keep_input_order():
    """Equal scores are resolved by input order."""
    first = _box(0, 0, 10, 10, confidence=0.8, tag=1.0)
    second = _box(0, 0, 10, 10, confidence=0.8, tag=2.0)
    other = _box(40, 40, 50, 50, confidence=0.8, tag=3.0)

    kept = suppress([first, other, second], 0.5)

    assert [d.landmarks[0] for d in kept] == [1.0, 3.0]


def _random_boxes(n, seed=0):
    rng = np.random.default_rng(seed)
    boxes = []
    for _ in range(n):
        x1, y1 = rng.uniform(0, 80, size=2)
        w, h = rng.uniform(5, 30, size=2)
        boxes.append(_box(x1, y1, x1 + w, y1 + h, confidence=float(rng.uniform())))
    return boxes


def test_suppress_pairwise_bound():
    """No two kept boxes overlap by more than the threshold."""
    kept = suppress(_random_boxes(60), 0.3)

    for i, a in enumerate(kept):
        for b in kept[i + 1:]:
            assert iou(a, b) <= 0.3


def test_suppress_idempotent():
    """Running NMS on its own output changes nothing."""
    once = suppress(_random_boxes(60, seed=1), 0.45)
    assert suppress(once, 0.45) == once


def test_suppress_sorted_descending():
    kept = suppress(_random_boxes(40, seed=2), 0.5)
    scores = [d.confidence for d in kept]
    assert scores == sorted(scores, reverse=True)
