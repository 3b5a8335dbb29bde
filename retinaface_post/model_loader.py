"""
Model loading for RetinaFace ONNX exports.

Responsibility:
    Load the network from disk with OpenCV DNN, configure the compute
    backend, and return a ready-to-infer cv2.dnn.Net.

Non-goals:
    - No preprocessing, inference, or output decoding.
    - No automatic model downloading.

Failure behavior:
    - A missing model file raises FileNotFoundError with the resolved path.
    - An unavailable CUDA backend raises RuntimeError.
"""

import logging
from pathlib import Path

import cv2

from retinaface_post.config import ModelConfig, get_project_root

logger = logging.getLogger(__name__)


def load_model(config: ModelConfig) -> cv2.dnn.Net:
    """Load and configure the RetinaFace network.

    Args:
        config: ModelConfig with the .onnx path and backend preference.

    Returns:
        A configured cv2.dnn.Net ready for inference.

    Raises:
        FileNotFoundError: If the model file does not exist.
        RuntimeError: If the requested backend is unavailable.
    """
    model_path = Path(config.model_path)
    if not model_path.is_absolute():
        model_path = get_project_root() / model_path

    if not model_path.is_file():
        raise FileNotFoundError(
            f"RetinaFace model not found.\n"
            f"  Expected: {model_path}\n"
            f"  Export the model to ONNX and place it at the path above,\n"
            f"  or update 'model.model_path' in your config."
        )

    logger.info("Loading model: %s", model_path)
    net = cv2.dnn.readNetFromONNX(str(model_path))

    if config.backend == "cuda":
        logger.info("Setting CUDA backend and target.")
        try:
            net.setPreferableBackend(cv2.dnn.DNN_BACKEND_CUDA)
            net.setPreferableTarget(cv2.dnn.DNN_TARGET_CUDA)
        except cv2.error as e:
            raise RuntimeError(
                f"Failed to set CUDA backend. Ensure OpenCV was built with "
                f"CUDA support.\n  OpenCV error: {e}"
            ) from e
    else:
        net.setPreferableBackend(cv2.dnn.DNN_BACKEND_OPENCV)
        net.setPreferableTarget(cv2.dnn.DNN_TARGET_CPU)

    logger.info("Model loaded (backend=%s).", config.backend)
    return net
