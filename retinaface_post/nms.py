"""
Greedy, class-agnostic non-maximum suppression over Detection lists.

The candidate count reaching this stage is small (score thresholding has
already run), so the quadratic pairwise walk is kept in plain Python to
make the tie-break order explicit: equal confidences keep their input
(anchor) order.
"""

from operator import attrgetter
from typing import List, Sequence

from retinaface_post.detection import Detection


def iou(a: Detection, b: Detection) -> float:
    """Intersection over union of two axis-aligned boxes.

    Returns 0.0 when the union is not positive (e.g. two zero-area boxes),
    so degenerate boxes never produce NaN.
    """
    inter_w = max(0.0, min(a.x2, b.x2) - max(a.x1, b.x1))
    inter_h = max(0.0, min(a.y2, b.y2) - max(a.y1, b.y1))
    intersection = inter_w * inter_h

    union = a.area + b.area - intersection
    if union <= 0.0:
        return 0.0
    return intersection / union


def suppress(detections: Sequence[Detection], iou_threshold: float) -> List[Detection]:
    """Keep the highest-confidence boxes, dropping those that overlap a kept
    box by more than iou_threshold.

    Args:
        detections: Candidates in any order.
        iou_threshold: A later candidate is suppressed when its IoU with a
                       kept box is strictly greater than this value.

    Returns:
        Kept detections, sorted by confidence (descending).
    """
    # sorted() is stable with reverse=True, so ties keep input order
    ordered = sorted(detections, key=attrgetter("confidence"), reverse=True)
    suppressed = [False] * len(ordered)
    kept: List[Detection] = []

    for i, current in enumerate(ordered):
        if suppressed[i]:
            continue
        kept.append(current)

        for j in range(i + 1, len(ordered)):
            if not suppressed[j] and iou(current, ordered[j]) > iou_threshold:
                suppressed[j] = True

    return kept
