"""
RetinaFace post-processing: anchor generation, output decoding and NMS.

Public API:
    - RetinaFaceParser: validates raw loc / landms / conf buffers and turns
      them into FaceObject records (the core of this package).
    - parse_retinaface: one-shot helper for a single image's outputs.
    - Detector: runs an ONNX RetinaFace via OpenCV DNN and parses its outputs.
    - generate_anchors / AnchorCache, decode, suppress: the individual stages.

Usage:
    from retinaface_post import RetinaFaceParser, OutputLayer, NetworkInfo

    parser = RetinaFaceParser()
    faces = parser.parse(layers, NetworkInfo(width=640, height=640))[0]
"""

from retinaface_post.anchors import AnchorCache, generate_anchors
from retinaface_post.decoder import decode
from retinaface_post.detection import Detection, FaceObject
from retinaface_post.detector import Detector
from retinaface_post.errors import (
    InvalidBufferLength,
    InvalidInputCount,
    MissingAuxiliaryData,
    RetinaFaceParseError,
    ZeroAnchorCount,
)
from retinaface_post.nms import iou, suppress
from retinaface_post.parser import NetworkInfo, OutputLayer, RetinaFaceParser, parse_retinaface

__all__ = [
    "AnchorCache",
    "generate_anchors",
    "decode",
    "Detection",
    "FaceObject",
    "Detector",
    "RetinaFaceParseError",
    "InvalidInputCount",
    "InvalidBufferLength",
    "ZeroAnchorCount",
    "MissingAuxiliaryData",
    "iou",
    "suppress",
    "NetworkInfo",
    "OutputLayer",
    "RetinaFaceParser",
    "parse_retinaface",
]
