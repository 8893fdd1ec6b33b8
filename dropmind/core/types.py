"""
Type definitions for DropMind.

This module defines the records exchanged between the classifier, the
confirmation layer and the transcript capture session.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Intent(BaseModel):
    """
    One entry of the fixed intent catalog.

    Attributes:
        key: Unique catalog key (e.g. "read-later")
        label: Human readable label shown when asking for confirmation
        color_hint: Display color for consumers that render the intent
        pipeline_id: Identifier of the downstream content pipeline
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Unique catalog key")
    label: str = Field(..., description="Display label")
    color_hint: str = Field(..., description="Display color hint (hex)")
    pipeline_id: str = Field(..., description="Downstream pipeline identifier")


class ClassificationResult(BaseModel):
    """
    Outcome of classifying one input.

    Level 1 is a deterministic rule match, level 2 a heuristic guess and
    level 3 an explicit human choice, which always carries confidence 1.0.
    """

    model_config = ConfigDict(frozen=True)

    intent: Intent
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence score")
    level: Literal[1, 2, 3] = Field(..., description="Waterfall level that produced the result")
    reason: str = Field(default="", description="Why this intent was chosen")

    @model_validator(mode="after")
    def _confirmed_results_are_certain(self) -> "ClassificationResult":
        if self.level == 3 and self.confidence != 1.0:
            raise ValueError("level 3 results must carry confidence 1.0")
        return self


class TranscriptChunk(BaseModel):
    """A finalized piece of transcript as delivered by the speech source."""

    text: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    timestamp: float = Field(..., description="Monotonic arrival time in seconds")


class TranscriptUpdate(BaseModel):
    """Live preview emitted while a capture session is listening."""

    raw: str
    cleaned: str
    is_final: bool = False


class CaptureResult(BaseModel):
    """Payload delivered once when a capture session stops."""

    raw: str
    cleaned: str
    chunks: List[TranscriptChunk] = Field(default_factory=list)
    duration: float = Field(default=0.0, description="Seconds between first and last chunk")


class CaptureState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    STOPPED = "stopped"
    CANCELLED = "cancelled"


class StartOutcome(str, Enum):
    STARTED = "started"
    NOT_SUPPORTED = "not-supported"
    ALREADY_LISTENING = "already-listening"
    FAILED = "failed"


# --- Upstream speech events ---


class PartialResult(BaseModel):
    """Unconfirmed text that may still change."""

    kind: Literal["partial"] = "partial"
    text: str


class FinalResult(BaseModel):
    """Confirmed text that will not be revised by the source."""

    kind: Literal["final"] = "final"
    text: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class StreamEnd(BaseModel):
    """The source stopped delivering events, possibly on its own."""

    kind: Literal["end"] = "end"


class StreamError(BaseModel):
    """An error reported by the source."""

    kind: Literal["error"] = "error"
    code: str


SpeechEvent = Annotated[Union[PartialResult, FinalResult, StreamEnd, StreamError], Field(discriminator="kind")]


# --- Escalation and routing ---


class EscalationDecision(BaseModel):
    """
    Whether a classification needs a human choice before dispatch.

    The primary intent is always the first option, followed by its alternatives.
    """

    result: ClassificationResult
    needs_confirmation: bool
    options: List[Intent] = Field(default_factory=list)

    @property
    def primary(self) -> Intent:
        return self.result.intent

    @property
    def alternatives(self) -> List[Intent]:
        return self.options[1:]


class RoutingDecision(BaseModel):
    """
    Final routing for one input.

    A ``pipeline_id`` of None means the user dismissed the confirmation and
    nothing should be dispatched.
    """

    text: str
    result: ClassificationResult
    pipeline_id: Optional[str] = None
    confirmed: bool = Field(default=False, description="True when a human picked the intent")

    @property
    def dispatched(self) -> bool:
        return self.pipeline_id is not None
