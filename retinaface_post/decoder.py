"""
Decoding of raw RetinaFace regression and score buffers.

Responsibility:
    Turn the flat loc / landms / conf buffers of ONE batch item into a list
    of Detection candidates in input-image pixels, keeping only anchors
    whose face probability reaches the confidence threshold.

Non-goals:
    - No overlap suppression (see nms.py).
    - No clipping or degenerate-box filtering (see parser.py).

Hard-coded:
    - Variance encoding (0.1 for centers and landmarks, 0.2 for sizes).
      The regression targets were trained against these exact factors.
    - Per-anchor strides: loc 4, landms 10, conf 2.
"""

from typing import List, Sequence, Union

import numpy as np

from retinaface_post.detection import Detection
from retinaface_post.errors import InvalidBufferLength

VARIANCES = (0.1, 0.2)

LOC_STRIDE = 4
LANDM_STRIDE = 10
CONF_STRIDE = 2

BufferLike = Union[np.ndarray, Sequence[float]]


def face_scores(conf: np.ndarray) -> np.ndarray:
    """Two-way softmax over (background, face) logit rows.

    Computed as exp(face) / (exp(bg) + exp(face)) after shifting each row
    by its maximum, which leaves the value unchanged and avoids overflow.
    """
    shifted = np.exp(conf - conf.max(axis=1, keepdims=True))
    return shifted[:, 1] / shifted.sum(axis=1)


def decode(
    anchors: BufferLike,
    loc: BufferLike,
    landm: BufferLike,
    conf: BufferLike,
    input_width: int,
    input_height: int,
    conf_threshold: float,
) -> List[Detection]:
    """Decode one batch item into face candidates.

    Args:
        anchors: Prior boxes, (N, 4) [cx, cy, w, h] normalized rows.
        loc: Flat box deltas, at least N * 4 floats.
        landm: Flat landmark deltas, at least N * 10 floats.
        conf: Flat (background, face) logits, at least N * 2 floats.
        input_width: Network input width in pixels.
        input_height: Network input height in pixels.
        conf_threshold: Minimum face probability to emit a candidate.

    Returns:
        Detections in ascending anchor order (not sorted by score).

    Raises:
        InvalidBufferLength: If any buffer is shorter than N * stride.
    """
    priors = np.asarray(anchors, dtype=np.float64).reshape(-1, 4)
    count = priors.shape[0]

    loc_rows = _rows(loc, count, LOC_STRIDE, "loc")
    landm_rows = _rows(landm, count, LANDM_STRIDE, "landms")
    conf_rows = _rows(conf, count, CONF_STRIDE, "conf")

    if count == 0:
        return []

    scores = face_scores(conf_rows)
    keep = np.flatnonzero(scores >= conf_threshold)
    if keep.size == 0:
        return []

    priors = priors[keep]
    deltas = loc_rows[keep]
    points = landm_rows[keep]
    center_var, size_var = VARIANCES

    prior_xy = priors[:, 0:2]
    prior_wh = priors[:, 2:4]

    centers = prior_xy + deltas[:, 0:2] * center_var * prior_wh
    sizes = prior_wh * np.exp(deltas[:, 2:4] * size_var)

    scale = np.array([input_width, input_height], dtype=np.float64)
    top_left = (centers - sizes / 2) * scale
    bottom_right = (centers + sizes / 2) * scale

    # (K, 5, 2) landmark offsets use the center variance only
    offsets = points.reshape(-1, 5, 2)
    marks = (prior_xy[:, None, :] + offsets * center_var * prior_wh[:, None, :]) * scale
    marks = marks.reshape(-1, 10)

    return [
        Detection(
            x1=float(top_left[k, 0]),
            y1=float(top_left[k, 1]),
            x2=float(bottom_right[k, 0]),
            y2=float(bottom_right[k, 1]),
            confidence=float(scores[keep[k]]),
            landmarks=tuple(float(v) for v in marks[k]),
        )
        for k in range(keep.size)
    ]


def _rows(buffer: BufferLike, count: int, stride: int, name: str) -> np.ndarray:
    """View the first count * stride floats of a flat buffer as (count, stride)."""
    flat = np.asarray(buffer, dtype=np.float64).reshape(-1)
    needed = count * stride
    if flat.size < needed:
        raise InvalidBufferLength(
            f"'{name}' buffer holds {flat.size} floats, expected at least "
            f"{needed} ({count} anchors x {stride})."
        )
    return flat[:needed].reshape(count, stride)
