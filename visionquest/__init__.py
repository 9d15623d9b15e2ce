"""VisionQuest - image classification with human feedback and generated insights."""

from .exceptions import (
    AnalysisBusyError,
    GenerationError,
    InferenceError,
    InputUnavailableError,
    InvalidTransitionError,
    ModelLoadError,
    RateLimitedError,
    ValidationError,
    VisionQuestError,
)
from .models import FeedbackEvent, FeedbackKind, Phase, Prediction, RetryPolicy, SessionState

__version__ = "2.0.0"
__all__ = [
    "AnalysisBusyError",
    "FeedbackEvent",
    "FeedbackKind",
    "GenerationError",
    "InferenceError",
    "InputUnavailableError",
    "InvalidTransitionError",
    "ModelLoadError",
    "Phase",
    "Prediction",
    "RateLimitedError",
    "RetryPolicy",
    "SessionState",
    "ValidationError",
    "VisionQuestError",
]
