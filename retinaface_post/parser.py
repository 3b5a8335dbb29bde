"""
RetinaFace output parser: the pipeline adapter around decode + NMS.

Responsibility:
    Accept the three raw output layers of a RetinaFace network for a whole
    batch, validate their shapes once at this boundary, then per batch item
    decode candidates, suppress overlaps, clip to the input frame, drop
    degenerate boxes and emit FaceObject records.

Public contract:
    RetinaFaceParser.parse(layers, network_info, ...) -> list[list[FaceObject]]

Failure behavior:
    Structural problems raise one of the errors in errors.py and abort the
    whole call; no partial result is returned.

Concurrency:
    The anchor cache is the only shared mutable state and guards its own
    population. Batch items share no other state and may be decoded on a
    thread pool (DetectionConfig.batch_workers).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np

from retinaface_post.anchors import AnchorCache
from retinaface_post.config import DetectionConfig, PriorConfig
from retinaface_post.decoder import CONF_STRIDE, LANDM_STRIDE, LOC_STRIDE, decode
from retinaface_post.detection import Detection, FaceObject
from retinaface_post.errors import (
    InvalidBufferLength,
    InvalidInputCount,
    MissingAuxiliaryData,
    RetinaFaceParseError,
    ZeroAnchorCount,
)
from retinaface_post.nms import suppress

logger = logging.getLogger(__name__)

_LOC_NAMES = {"loc", "bbox", "boxes"}
_LANDM_NAMES = {"landms", "landm", "landmarks"}
_CONF_NAMES = {"conf", "scores", "confidence"}


@dataclass(frozen=True)
class NetworkInfo:
    """Network input dimensions in pixels."""

    width: int
    height: int


@dataclass(frozen=True)
class OutputLayer:
    """A borrowed, flat view over one raw output layer.

    Attributes:
        name: Layer name as exported ('loc', 'landms', 'conf', ...).
        buffer: Flat float array covering every batch item.
        dims: Declared per-item dimensions, e.g. (16800, 4). Empty when
              unknown; the anchor count is then inferred from the length.
    """

    name: str
    buffer: np.ndarray
    dims: Tuple[int, ...] = ()

    @classmethod
    def from_array(cls, name: str, array, batched: Optional[bool] = None) -> "OutputLayer":
        """Wrap an inference output such as a (B, N, 4) or (N, 4) array.

        With batched=True the leading axis is treated as the batch axis
        and excluded from dims. When None, arrays with more than two axes
        are treated as batched.
        """
        arr = np.asarray(array)
        if batched is None:
            batched = arr.ndim > 2
        dims = tuple(int(d) for d in (arr.shape[1:] if batched else arr.shape))
        return cls(name=name, buffer=arr.reshape(-1), dims=dims)

    @property
    def size(self) -> int:
        return int(np.asarray(self.buffer).size)


class RetinaFaceParser:
    """Validates raw RetinaFace outputs and turns them into face records.

    The parser owns its anchor cache; construct one parser per model and
    reuse it so anchors are generated once per input size.

    Usage:
        parser = RetinaFaceParser()
        faces = parser.parse(
            [OutputLayer.from_array("loc", loc),
             OutputLayer.from_array("landms", landms),
             OutputLayer.from_array("conf", conf)],
            NetworkInfo(width=640, height=640),
        )[0]
    """

    def __init__(
        self,
        priors: Optional[PriorConfig] = None,
        detection: Optional[DetectionConfig] = None,
        cache: Optional[AnchorCache] = None,
    ) -> None:
        self._prior_config = priors or PriorConfig()
        self._detection = detection or DetectionConfig()
        self._cache = cache or AnchorCache(
            self._prior_config.min_sizes,
            self._prior_config.steps,
            clip=self._prior_config.clip,
        )

    @property
    def anchor_cache(self) -> AnchorCache:
        return self._cache

    def parse(
        self,
        layers: Sequence[OutputLayer],
        network_info: NetworkInfo,
        params: Optional[DetectionConfig] = None,
        batch_size: int = 1,
        priors=None,
    ) -> List[List[FaceObject]]:
        """Parse one batch of raw outputs.

        Args:
            layers: At least three output layers: loc, landms, conf. Found
                    by name when the names are recognised, otherwise taken
                    positionally in that order.
            network_info: Network input width/height.
            params: Per-call thresholds; defaults to the parser's config.
            batch_size: Number of images packed in each buffer.
            priors: Optional externally supplied (N, 4) prior boxes.

        Returns:
            One list of FaceObject per batch item, in submission order.
            Each list is sorted by confidence (descending).

        Raises:
            InvalidInputCount: Fewer than 3 layers.
            ZeroAnchorCount: Declared anchor count is 0.
            InvalidBufferLength: A buffer does not match the anchor count.
            MissingAuxiliaryData: External priors required but absent.
        """
        params = params or self._detection
        try:
            items, anchors = self._prepare(layers, network_info, batch_size, priors)
        except RetinaFaceParseError as e:
            logger.error("RetinaFace parse failed: %s", e)
            raise

        def run(item):
            loc, landm, conf = item
            return self._parse_item(anchors, loc, landm, conf, network_info, params)

        if params.batch_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=params.batch_workers) as pool:
                results = list(pool.map(run, items))
        else:
            results = [run(item) for item in items]

        logger.debug(
            "Parsed batch of %d: %s faces", len(results), [len(r) for r in results]
        )
        return results

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _prepare(self, layers, network_info, batch_size, priors):
        """Validate the batch and slice it into per-item buffer views."""
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}.")

        loc_layer, landm_layer, conf_layer = _resolve_layers(layers)

        if loc_layer.dims:
            anchor_count = loc_layer.dims[0]
        elif loc_layer.size == 0:
            anchor_count = 0
        elif loc_layer.size % (LOC_STRIDE * batch_size) != 0:
            raise InvalidBufferLength(
                f"Layer '{loc_layer.name}' holds {loc_layer.size} floats, not a whole "
                f"number of anchors ({LOC_STRIDE} floats each) for {batch_size} item(s)."
            )
        else:
            anchor_count = loc_layer.size // (LOC_STRIDE * batch_size)
        if anchor_count == 0:
            raise ZeroAnchorCount(
                f"Layer '{loc_layer.name}' holds 0 anchors (dims={loc_layer.dims})."
            )

        buffers = []
        for layer, stride in (
            (loc_layer, LOC_STRIDE),
            (landm_layer, LANDM_STRIDE),
            (conf_layer, CONF_STRIDE),
        ):
            buffers.append(_checked_buffer(layer, stride, anchor_count, batch_size))

        anchors = self._anchors(network_info, priors)
        if anchors.shape[0] != anchor_count:
            raise InvalidBufferLength(
                f"Output layers hold {anchor_count} anchors but the prior grid for "
                f"{network_info.width}x{network_info.height} has {anchors.shape[0]}."
            )

        items = []
        for b in range(batch_size):
            items.append(tuple(
                buf[b * anchor_count * stride:(b + 1) * anchor_count * stride]
                for buf, stride in zip(buffers, (LOC_STRIDE, LANDM_STRIDE, CONF_STRIDE))
            ))
        return items, anchors

    def _anchors(self, network_info: NetworkInfo, priors) -> np.ndarray:
        if priors is not None:
            flat = np.asarray(priors, dtype=np.float64).reshape(-1)
            if flat.size % 4 != 0:
                raise InvalidBufferLength(
                    f"Prior buffer holds {flat.size} floats, not a multiple of 4."
                )
            return flat.reshape(-1, 4)

        if self._prior_config.source == "external":
            raise MissingAuxiliaryData(
                "Parser is configured for externally supplied priors, "
                "but none were passed to parse()."
            )
        return self._cache.get(network_info.width, network_info.height)

    def _parse_item(self, anchors, loc, landm, conf, network_info, params) -> List[FaceObject]:
        width, height = network_info.width, network_info.height

        candidates = decode(
            anchors, loc, landm, conf, width, height, params.confidence_threshold
        )
        kept = suppress(candidates, params.nms_threshold)

        faces: List[FaceObject] = []
        for det in kept:
            det = _clip(det, width, height)
            if det.width < params.min_box_size or det.height < params.min_box_size:
                continue
            faces.append(FaceObject.from_detection(det, with_landmarks=params.with_landmarks))
            if params.max_detections is not None and len(faces) >= params.max_detections:
                break

        logger.debug(
            "Item decoded: %d candidates, %d after NMS, %d kept",
            len(candidates), len(kept), len(faces),
        )
        return faces


def parse_retinaface(
    loc,
    landms,
    conf,
    input_width: int,
    input_height: int,
    params: Optional[DetectionConfig] = None,
) -> List[FaceObject]:
    """One-shot convenience for a single image's (N, 4) / (N, 10) / (N, 2) outputs.

    Builds a throwaway parser; reuse a RetinaFaceParser across frames to
    keep the anchor cache.
    """
    layers = [
        OutputLayer.from_array("loc", loc, batched=False),
        OutputLayer.from_array("landms", landms, batched=False),
        OutputLayer.from_array("conf", conf, batched=False),
    ]
    parser = RetinaFaceParser(detection=params)
    return parser.parse(layers, NetworkInfo(width=input_width, height=input_height))[0]


def _resolve_layers(layers: Sequence[OutputLayer]) -> Tuple[OutputLayer, OutputLayer, OutputLayer]:
    """Pick loc / landms / conf by name, falling back to positional order."""
    if len(layers) < 3:
        raise InvalidInputCount(
            f"Expected at least 3 output layers (loc, landms, conf), got {len(layers)}."
        )

    by_name = {}
    for layer in layers:
        name = layer.name.lower()
        for key, aliases in (("loc", _LOC_NAMES), ("landm", _LANDM_NAMES), ("conf", _CONF_NAMES)):
            if name in aliases:
                by_name.setdefault(key, layer)

    if len(by_name) == 3:
        return by_name["loc"], by_name["landm"], by_name["conf"]
    return layers[0], layers[1], layers[2]


def _checked_buffer(layer: OutputLayer, stride: int, anchor_count: int, batch_size: int) -> np.ndarray:
    """Return the layer's flat float buffer after checking its length."""
    buf = np.asarray(layer.buffer).reshape(-1)

    if buf.size % stride != 0:
        raise InvalidBufferLength(
            f"Layer '{layer.name}' holds {buf.size} floats, "
            f"not a multiple of its per-anchor stride {stride}."
        )

    if layer.dims and layer.dims[0] != anchor_count:
        raise InvalidBufferLength(
            f"Layer '{layer.name}' declares {layer.dims[0]} anchors, expected {anchor_count}."
        )

    expected = batch_size * anchor_count * stride
    if buf.size != expected:
        raise InvalidBufferLength(
            f"Layer '{layer.name}' holds {buf.size} floats, expected {expected} "
            f"({batch_size} x {anchor_count} anchors x {stride})."
        )
    return buf


def _clip(det: Detection, width: int, height: int) -> Detection:
    """Clamp box corners into [0, width-1] x [0, height-1]."""
    max_x = float(width - 1)
    max_y = float(height - 1)
    return replace(
        det,
        x1=min(max(det.x1, 0.0), max_x),
        y1=min(max(det.y1, 0.0), max_y),
        x2=min(max(det.x2, 0.0), max_x),
        y2=min(max(det.y2, 0.0), max_y),
    )
