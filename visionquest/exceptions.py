"""Exception types raised across the prediction-feedback pipeline."""


class VisionQuestError(Exception):
    """Base exception for VisionQuest."""


class InputUnavailableError(VisionQuestError):
    """No usable frame: missing source or zero width/height."""


class ModelLoadError(VisionQuestError):
    """The classifier could not be loaded from the configured endpoint."""


class InferenceError(VisionQuestError):
    """The classifier raised while predicting."""


class GenerationError(VisionQuestError):
    """The text generator returned an error.

    ``status`` is the HTTP status when one is known, so rate limiting
    (429) can be told apart from hard failures.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RateLimitedError(GenerationError):
    """The text generator reported exhausted capacity."""

    def __init__(self, message: str = "RESOURCE_EXHAUSTED", status: int | None = 429):
        super().__init__(message, status)


class ValidationError(VisionQuestError):
    """User input was rejected locally."""


class InvalidTransitionError(VisionQuestError):
    """The requested action is not allowed in the current phase."""


class AnalysisBusyError(InvalidTransitionError):
    """An analysis or insight fetch is still running."""
