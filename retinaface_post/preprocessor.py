"""
Preprocessing for RetinaFace inference.

Responsibility:
    Convert a BGR frame into a (1, 3, H, W) float32 blob at the network
    input size, and report the scale that maps network pixels back to
    frame pixels.

Hard-coded:
    - Channel order stays BGR (RetinaFace is trained on BGR with per-channel
      mean subtraction), so swapRB is False.
    - Aspect-preserving mode anchors the resized frame at the top-left
      corner and pads right/bottom with the mean colour (zero after mean
      subtraction), so no offset is needed to map boxes back.
"""

from typing import Tuple

import cv2
import numpy as np

from retinaface_post.config import ModelConfig


def preprocess(frame: np.ndarray, config: ModelConfig) -> Tuple[np.ndarray, Tuple[float, float]]:
    """Build the network input blob for one frame.

    Args:
        frame: Input image as a BGR numpy array (H, W, 3).
        config: ModelConfig providing input_size, mean_values, scale_factor
                and keep_aspect.

    Returns:
        (blob, (scale_x, scale_y)): blob has shape (1, 3, in_h, in_w);
        multiplying network-space coordinates by the scales gives frame
        coordinates.

    Raises:
        ValueError: If the frame is empty.
    """
    if frame is None or frame.size == 0:
        raise ValueError(
            "Cannot preprocess an empty frame. "
            "Ensure the input source is providing valid frames."
        )

    in_w, in_h = config.input_size
    frame_h, frame_w = frame.shape[:2]

    if config.keep_aspect:
        ratio = min(in_w / frame_w, in_h / frame_h)
        resized_w = max(1, int(round(frame_w * ratio)))
        resized_h = max(1, int(round(frame_h * ratio)))
        resized = cv2.resize(frame, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

        canvas = np.empty((in_h, in_w, 3), dtype=frame.dtype)
        canvas[:] = np.asarray(config.mean_values, dtype=np.float64).round().astype(frame.dtype)
        canvas[:resized_h, :resized_w] = resized
        source = canvas
        scale = (frame_w / resized_w, frame_h / resized_h)
    else:
        source = frame
        scale = (frame_w / in_w, frame_h / in_h)

    blob = cv2.dnn.blobFromImage(
        image=source,
        scalefactor=config.scale_factor,
        size=(in_w, in_h),
        mean=config.mean_values,
        swapRB=False,
        crop=False,
    )
    return blob, scale
