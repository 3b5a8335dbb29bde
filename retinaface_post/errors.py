"""
Error kinds raised by the RetinaFace output parser.

Every error here is structural (bad buffer shapes or missing inputs) and
terminal for the current parse call. No partial detection list is ever
returned alongside one of these.

Per-detection rejects (sub-threshold scores, degenerate boxes) are NOT
errors; they are filtered silently.
"""


class RetinaFaceParseError(ValueError):
    """Base class for all parser input errors."""


class InvalidInputCount(RetinaFaceParseError):
    """Fewer than the three required output layers (loc, landms, conf) were supplied."""


class InvalidBufferLength(RetinaFaceParseError):
    """A buffer length is not a multiple of its per-anchor stride, or disagrees
    with the declared anchor count."""


class ZeroAnchorCount(RetinaFaceParseError):
    """The declared anchor count is zero."""


class MissingAuxiliaryData(RetinaFaceParseError):
    """Externally supplied prior boxes were expected but not provided."""
