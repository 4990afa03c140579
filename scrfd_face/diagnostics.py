"""
Decode diagnostics and error types.

Responsibility:
    Provide the structured event channel the decoder reports to, and the
    exception types raised inside the decode path.

    Per-level problems never escape the pipeline: the decoder raises
    ShapeMismatchError, the aggregator catches it, and the condition is
    forwarded to a DiagnosticsSink as a DecodeEvent. Callers choose the
    sink: log it, collect it, or ignore it.

Non-goals:
    - No formatting for humans beyond the logging sink.
    - No global state; every sink is owned by the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

# Event kinds
SHAPE_MISMATCH = "shape_mismatch"
LEVEL_DECODED = "level_decoded"
SUPPRESSED = "suppressed"

# Kinds that describe a problem rather than a trace of normal work.
_WARNING_KINDS = {SHAPE_MISMATCH}


class DecodeError(ValueError):
    """Base class for errors raised while decoding detector outputs."""


class ShapeMismatchError(DecodeError):
    """A level's tensors are missing or disagree on their anchor count."""


class AnchorIndexError(IndexError):
    """An anchor index falls outside the level's feature map."""


@dataclass(frozen=True)
class DecodeEvent:
    """A single structured diagnostic emitted during decoding.

    Attributes:
        kind: Event kind (SHAPE_MISMATCH, LEVEL_DECODED, SUPPRESSED).
        message: Human-readable description.
        level: Pyramid level index, when the event concerns one level.
        stride: Stride of that level.
        details: Extra structured values (counts, shapes).
    """

    kind: str
    message: str
    level: Optional[int] = None
    stride: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_warning(self) -> bool:
        return self.kind in _WARNING_KINDS

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "level": self.level,
            "stride": self.stride,
            "details": dict(self.details),
        }


class DiagnosticsSink(Protocol):
    """Anything that accepts DecodeEvents."""

    def emit(self, event: DecodeEvent) -> None:
        ...


class NullSink:
    """Discards every event."""

    def emit(self, event: DecodeEvent) -> None:
        pass


class LoggingSink:
    """Forwards events to the standard logging system.

    Warning kinds are logged at WARNING, trace events at DEBUG.
    """

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logger

    def emit(self, event: DecodeEvent) -> None:
        level = logging.WARNING if event.is_warning else logging.DEBUG
        if event.stride is not None:
            self._log.log(level, "[stride %d] %s", event.stride, event.message)
        else:
            self._log.log(level, "%s", event.message)


class CollectingSink:
    """Keeps every event in memory, optionally forwarding to another sink."""

    def __init__(self, forward: Optional[DiagnosticsSink] = None) -> None:
        self.events: List[DecodeEvent] = []
        self._forward = forward

    def emit(self, event: DecodeEvent) -> None:
        self.events.append(event)
        if self._forward is not None:
            self._forward.emit(event)

    @property
    def warnings(self) -> List[DecodeEvent]:
        return [e for e in self.events if e.is_warning]

    def of_kind(self, kind: str) -> List[DecodeEvent]:
        return [e for e in self.events if e.kind == kind]
