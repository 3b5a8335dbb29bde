"""
Tests for the decoder module.
"""

import math

import numpy as np
import pytest

from retinaface_post.decoder import VARIANCES, decode, face_scores
from retinaface_post.errors import InvalidBufferLength

ANCHOR = [[0.5, 0.5, 0.2, 0.2]]


def _decode_one(loc=None, landm=None, conf=(0.0, 5.0), threshold=0.5, size=100):
    loc = np.zeros(4) if loc is None else np.asarray(loc, dtype=np.float32)
    landm = np.zeros(10) if landm is None else np.asarray(landm, dtype=np.float32)
    return decode(ANCHOR, loc, landm, np.asarray(conf, dtype=np.float32), size, size, threshold)


def test_equal_logits_give_half():
    """Equal background/face logits mean a face probability of exactly 0.5."""
    assert face_scores(np.array([[0.0, 0.0]]))[0] == 0.5


def test_softmax_value():
    """conf [0, 1] -> exp(1) / (1 + exp(1))."""
    expected = math.exp(1) / (1 + math.exp(1))
    assert face_scores(np.array([[0.0, 1.0]]))[0] == pytest.approx(expected)


def test_softmax_large_logits():
    """Extreme logits saturate instead of producing NaN."""
    scores = face_scores(np.array([[1000.0, 0.0], [0.0, 1000.0]]))
    assert scores[0] == pytest.approx(0.0)
    assert scores[1] == pytest.approx(1.0)


def test_zero_deltas_reproduce_anchor():
    """With zero regression the box is the prior box itself."""
    dets = _decode_one(conf=(0.0, 0.0))

    assert len(dets) == 1
    det = dets[0]
    assert det.confidence == 0.5
    assert (det.x1 + det.x2) / 2 == pytest.approx(50.0)
    assert (det.y1 + det.y2) / 2 == pytest.approx(50.0)
    assert det.width == pytest.approx(20.0)
    assert det.height == pytest.approx(20.0)
    assert list(det.landmarks) == pytest.approx([50.0] * 10)


def test_center_variance():
    """Center deltas are scaled by 0.1 and the prior size."""
    det = _decode_one(loc=[1.0, -1.0, 0.0, 0.0])[0]

    assert (det.x1 + det.x2) / 2 == pytest.approx((0.5 + VARIANCES[0] * 0.2) * 100)
    assert (det.y1 + det.y2) / 2 == pytest.approx((0.5 - VARIANCES[0] * 0.2) * 100)


def test_size_variance():
    """Size deltas are scaled by 0.2 inside the exponential."""
    det = _decode_one(loc=[0.0, 0.0, 1.0, -1.0])[0]

    assert det.width == pytest.approx(0.2 * math.exp(VARIANCES[1]) * 100)
    assert det.height == pytest.approx(0.2 * math.exp(-VARIANCES[1]) * 100)


def test_landmarks_use_center_variance():
    """Landmark offsets use 0.1, never the size variance."""
    landm = np.zeros(10)
    landm[0] = 1.0   # first point x
    landm[9] = -2.0  # last point y
    det = _decode_one(landm=landm)[0]

    assert det.landmarks[0] == pytest.approx(52.0)
    assert det.landmarks[1] == pytest.approx(50.0)
    assert det.landmarks[9] == pytest.approx(46.0)


def test_pixel_scaling_per_axis():
    """x coordinates scale by width and y coordinates by height."""
    dets = decode(ANCHOR, np.zeros(4), np.zeros(10), [0.0, 5.0], 200, 100, 0.5)
    det = dets[0]

    assert det.x1 == pytest.approx(80.0)
    assert det.x2 == pytest.approx(120.0)
    assert det.y1 == pytest.approx(40.0)
    assert det.y2 == pytest.approx(60.0)


def test_threshold_and_anchor_order():
    """Only anchors at or above threshold survive, in anchor order."""
    anchors = [
        [0.2, 0.2, 0.1, 0.1],
        [0.5, 0.5, 0.1, 0.1],
        [0.8, 0.8, 0.1, 0.1],
    ]
    conf = [0.0, 1.0,   # 0.73
            3.0, 0.0,   # 0.05
            0.0, 4.0]   # 0.98
    dets = decode(anchors, np.zeros(12), np.zeros(30), conf, 100, 100, 0.5)

    assert len(dets) == 2
    assert dets[0].x1 == pytest.approx(15.0)
    assert dets[1].x1 == pytest.approx(75.0)
    assert dets[0].confidence < dets[1].confidence


def test_threshold_filters_everything():
    """A threshold above every score yields an empty list."""
    assert _decode_one(conf=(0.0, 1.0), threshold=0.8) == []


@pytest.mark.parametrize("short", ["loc", "landm", "conf"])
def test_short_buffer(short):
    """A buffer shorter than anchors x stride is rejected."""
    buffers = {"loc": np.zeros(4), "landm": np.zeros(10), "conf": np.zeros(2)}
    buffers[short] = buffers[short][:-1]

    with pytest.raises(InvalidBufferLength):
        decode(ANCHOR, buffers["loc"], buffers["landm"], buffers["conf"], 100, 100, 0.5)


def test_no_anchors():
    """An empty prior set decodes to nothing."""
    assert decode(np.empty((0, 4)), [], [], [], 100, 100, 0.0) == []
