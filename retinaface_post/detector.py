"""
Detector: end-to-end RetinaFace inference on a single BGR frame.

Public contract:
    Detector.detect(frame: np.ndarray) -> list[FaceObject]

The network is run through OpenCV DNN; its three raw outputs are handed
to RetinaFaceParser and the resulting faces are mapped back from network
input pixels to frame pixels.

Constraints:
    - Input must be a BGR numpy array (as returned by OpenCV).
    - Thread-safety is not guaranteed: cv2.dnn.Net is stateful.
"""

import logging
from typing import List, Optional

import numpy as np

from retinaface_post.config import AppConfig, load_config
from retinaface_post.detection import FaceObject
from retinaface_post.model_loader import load_model
from retinaface_post.parser import NetworkInfo, OutputLayer, RetinaFaceParser
from retinaface_post.preprocessor import preprocess

logger = logging.getLogger(__name__)

# RetinaFace exports name their outputs inconsistently (loc/conf/landms,
# output0/1/2, ...), but the trailing dimension is unambiguous.
_LAYER_BY_WIDTH = {4: "loc", 10: "landms", 2: "conf"}


class Detector:
    """RetinaFace face detector.

    Usage:
        detector = Detector()                   # defaults, loads model
        faces = detector.detect(frame)          # BGR numpy array

    The model and the parser (with its anchor cache) are created once;
    detect() only preprocesses, runs inference and parses.
    """

    def __init__(self, config: Optional[AppConfig] = None, net=None) -> None:
        """Initialize the detector.

        Args:
            config: Application configuration; defaults when None.
            net: An already-loaded network exposing setInput(),
                 forward(names) and getUnconnectedOutLayersNames().
                 Loaded from config.model when None.

        Raises:
            FileNotFoundError: If the model file is missing.
            RuntimeError: If the requested backend is unavailable.
        """
        if config is None:
            config = load_config()

        self._config = config
        self._net = net if net is not None else load_model(config.model)
        self._parser = RetinaFaceParser(config.priors, config.detection)

        in_w, in_h = config.model.input_size
        self._network_info = NetworkInfo(width=in_w, height=in_h)

        logger.info(
            "Detector initialized (input=%dx%d, confidence_threshold=%.2f, nms_threshold=%.2f)",
            in_w, in_h,
            config.detection.confidence_threshold,
            config.detection.nms_threshold,
        )

    @property
    def config(self) -> AppConfig:
        """Return the active configuration (read-only)."""
        return self._config

    @property
    def parser(self) -> RetinaFaceParser:
        return self._parser

    def detect(self, frame: np.ndarray) -> List[FaceObject]:
        """Detect faces in a single BGR frame.

        Returns:
            FaceObject records in frame pixels, sorted by confidence
            (descending). Empty list if no faces are found.

        Raises:
            TypeError: If frame is not a numpy ndarray.
            ValueError: If frame has incorrect shape or is empty, or the
                        network outputs cannot be parsed.
        """
        self._validate_frame(frame)

        blob, (scale_x, scale_y) = preprocess(frame, self._config.model)

        self._net.setInput(blob)
        names = list(self._net.getUnconnectedOutLayersNames())
        outputs = self._net.forward(names)

        layers = _label_outputs(names, outputs)
        faces = self._parser.parse(layers, self._network_info)[0]

        return [face.scaled(scale_x, scale_y) for face in faces]

    @staticmethod
    def _validate_frame(frame: np.ndarray) -> None:
        """Validate that the input frame meets the API contract."""
        if not isinstance(frame, np.ndarray):
            raise TypeError(
                f"Expected frame to be a numpy ndarray, "
                f"got {type(frame).__name__}. "
                f"Use cv2.imread() or VideoCapture.read() to obtain frames."
            )

        if frame.size == 0:
            raise ValueError(
                "Frame is empty (zero size). "
                "Ensure the input source is providing valid frames."
            )

        if frame.ndim != 3:
            raise ValueError(
                f"Expected a 3-dimensional frame (H, W, C), "
                f"got {frame.ndim} dimensions with shape {frame.shape}. "
                f"Grayscale images must be converted to BGR first."
            )

        if frame.shape[2] != 3:
            raise ValueError(
                f"Expected 3 channels (BGR), got {frame.shape[2]} channels. "
                f"Input must be a BGR image as returned by OpenCV."
            )


def _label_outputs(names, outputs) -> List[OutputLayer]:
    """Name each raw output loc/landms/conf by its trailing dimension."""
    layers = []
    for name, output in zip(names, outputs):
        arr = np.asarray(output)
        label = _LAYER_BY_WIDTH.get(arr.shape[-1], name)
        layers.append(OutputLayer.from_array(label, arr))
    return layers
