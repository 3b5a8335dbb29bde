"""
Visualization of face detections.

Responsibility:
    Draw boxes, optional confidence labels and optional 5-point landmarks
    onto a copy of a frame. Pure rendering: no I/O, no windows.
"""

from typing import List

import cv2
import numpy as np

from retinaface_post.config import VisualizationConfig
from retinaface_post.detection import FaceObject

_FONT = cv2.FONT_HERSHEY_SIMPLEX
_FONT_SCALE = 0.5
_FONT_THICKNESS = 1
_LABEL_PADDING = 4
_LANDMARK_RADIUS = 2


def draw_detections(
    frame: np.ndarray,
    faces: List[FaceObject],
    config: VisualizationConfig,
) -> np.ndarray:
    """Draw face boxes (and optionally scores and landmarks) onto a frame.

    Args:
        frame: Input BGR image (not modified; a copy is returned).
        faces: Faces in this frame's pixel space.
        config: Visualization parameters.

    Returns:
        A new BGR numpy array with the faces drawn.
    """
    annotated = frame.copy()

    for face in faces:
        x1, y1 = int(round(face.left)), int(round(face.top))
        x2, y2 = int(round(face.right)), int(round(face.bottom))

        cv2.rectangle(
            annotated, (x1, y1), (x2, y2),
            color=config.box_color,
            thickness=config.thickness,
        )

        if config.show_landmarks and face.landmarks:
            for i in range(0, len(face.landmarks), 2):
                point = (int(round(face.landmarks[i])), int(round(face.landmarks[i + 1])))
                cv2.circle(
                    annotated, point, _LANDMARK_RADIUS,
                    color=config.landmark_color,
                    thickness=cv2.FILLED,
                )

        if config.show_confidence:
            _draw_label(annotated, f"{face.confidence:.2f}", x1, y1, y2, config)

    return annotated


def _draw_label(image, label, x1, y1, y2, config) -> None:
    (text_w, text_h), _ = cv2.getTextSize(label, _FONT, _FONT_SCALE, _FONT_THICKNESS)

    # above the box, or below it when too close to the top edge
    label_y = y1 - _LABEL_PADDING
    if label_y - text_h - _LABEL_PADDING < 0:
        label_y = y2 + text_h + _LABEL_PADDING

    cv2.rectangle(
        image,
        (x1, label_y - text_h - _LABEL_PADDING),
        (x1 + text_w + _LABEL_PADDING, label_y + _LABEL_PADDING),
        color=config.box_color,
        thickness=cv2.FILLED,
    )
    cv2.putText(
        image, label, (x1 + _LABEL_PADDING // 2, label_y),
        _FONT, _FONT_SCALE, (0, 0, 0), _FONT_THICKNESS, cv2.LINE_AA,
    )
