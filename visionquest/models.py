"""Data types shared by the ranking, feedback and session layers."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Prediction:
    """One class score emitted by the classifier."""

    label: str
    probability: float

    @classmethod
    def from_raw(cls, item) -> "Prediction":
        """Accept a Prediction, a ``{label|className, probability}`` mapping or a pair."""
        if isinstance(item, Prediction):
            return item
        if isinstance(item, Mapping):
            label = item.get("label", item.get("className"))
            return cls(label=str(label), probability=float(item["probability"]))
        label, probability = item
        return cls(label=str(label), probability=float(probability))


class FeedbackKind(str, Enum):
    CONFIRMATION = "CONFIRMATION"
    CORRECTION = "CORRECTION"


@dataclass(frozen=True)
class FeedbackEvent:
    """A single confirmation or correction given by the user."""

    timestamp: int
    original_label: str
    corrected_label: str
    kind: FeedbackKind

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "originalLabel": self.original_label,
            "correctedLabel": self.corrected_label,
            "type": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "FeedbackEvent":
        return cls(
            timestamp=int(data["timestamp"]),
            original_label=str(data["originalLabel"]),
            corrected_label=str(data["correctedLabel"]),
            kind=FeedbackKind(data["type"]),
        )


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    initial_delay_ms: int
    backoff_multiplier: float

    def __post_init__(self):
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.initial_delay_ms <= 0:
            raise ValueError("initial_delay_ms must be > 0")
        if self.backoff_multiplier <= 1:
            raise ValueError("backoff_multiplier must be > 1")

    @property
    def initial_delay(self) -> float:
        """Initial delay in seconds."""
        return self.initial_delay_ms / 1000


class Phase(str, Enum):
    LOADING_MODEL = "LOADING_MODEL"
    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    REVIEWING = "REVIEWING"
    MANUAL_ENTRY = "MANUAL_ENTRY"
    FINALIZED = "FINALIZED"
    ERROR = "ERROR"


@dataclass
class SessionState:
    """Everything that belongs to one analysis run.

    Replaced wholesale when a new analysis starts, a new frame is selected
    or feedback has been finalized.
    """

    predictions: tuple[Prediction, ...] = ()
    candidate_cursor: int = 0
    manual_entry_active: bool = False
    feedback_given: bool = False
    insight: str | None = None
    insight_loading: bool = False
    last_error: str | None = None
    feedback_response: str | None = None

    @property
    def current_candidate(self) -> Prediction | None:
        if 0 <= self.candidate_cursor < len(self.predictions):
            return self.predictions[self.candidate_cursor]
        return None

    @property
    def current_label(self) -> str:
        candidate = self.current_candidate
        return candidate.label if candidate else "Unknown"


FeedbackHistory = tuple[FeedbackEvent, ...]
