"""
Detection data transfer objects.

Two frozen containers flow through the pipeline:

    Detection   -- a decoded candidate in input-image pixels, produced by
                   the decoder and consumed by NMS. Corner ordering
                   (x1 < x2, y1 < y2) is only guaranteed after clipping.
    FaceObject  -- the caller-facing record emitted by the parser:
                   left/top/width/height, confidence, a fixed class id
                   and optional 5-point landmarks.

Non-goals:
    - No rendering logic.
    - No file I/O.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

Landmarks = Tuple[float, ...]


@dataclass(frozen=True, slots=True)
class Detection:
    """A decoded face candidate.

    Attributes:
        x1: Left edge (input pixels).
        y1: Top edge (input pixels).
        x2: Right edge (input pixels).
        y2: Bottom edge (input pixels).
        confidence: Face probability in [0.0, 1.0].
        landmarks: Ten floats, (x, y) for each of the 5 facial points:
                   left eye, right eye, nose, left mouth corner,
                   right mouth corner.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float
    landmarks: Landmarks = ()

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass(frozen=True, slots=True)
class FaceObject:
    """A final face detection, in the shape downstream consumers expect.

    Attributes:
        left: Left edge in pixels.
        top: Top edge in pixels.
        width: Box width in pixels.
        height: Box height in pixels.
        confidence: Face probability in [0.0, 1.0].
        class_id: Always 0 (single "face" class).
        landmarks: Ten landmark floats, or None when landmarks are not
                   requested.
    """

    left: float
    top: float
    width: float
    height: float
    confidence: float
    class_id: int = 0
    landmarks: Optional[Landmarks] = None

    @classmethod
    def from_detection(cls, det: Detection, with_landmarks: bool = True) -> "FaceObject":
        return cls(
            left=det.x1,
            top=det.y1,
            width=det.x2 - det.x1,
            height=det.y2 - det.y1,
            confidence=det.confidence,
            landmarks=tuple(det.landmarks) if with_landmarks else None,
        )

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def scaled(self, scale_x: float, scale_y: float) -> "FaceObject":
        """Return a copy mapped into another pixel space (e.g. network -> frame)."""
        landmarks = None
        if self.landmarks is not None:
            landmarks = tuple(
                v * (scale_x if i % 2 == 0 else scale_y)
                for i, v in enumerate(self.landmarks)
            )
        return FaceObject(
            left=self.left * scale_x,
            top=self.top * scale_y,
            width=self.width * scale_x,
            height=self.height * scale_y,
            confidence=self.confidence,
            class_id=self.class_id,
            landmarks=landmarks,
        )

    def to_dict(self) -> dict:
        """Return a plain dict suitable for JSON serialization."""
        payload = {
            "left": round(self.left, 2),
            "top": round(self.top, 2),
            "width": round(self.width, 2),
            "height": round(self.height, 2),
            "confidence": round(self.confidence, 4),
            "class_id": self.class_id,
        }
        if self.landmarks is not None:
            payload["landmarks"] = [round(v, 2) for v in self.landmarks]
        return payload
