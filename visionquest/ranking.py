"""Ordering and confidence gating of classifier output."""

from collections.abc import Iterable

from .config import CONFIDENCE_THRESHOLD
from .models import Prediction


def rank(raw_predictions: Iterable) -> tuple[Prediction, ...]:
    # sorted() is stable, so equal scores keep the classifier's order
    predictions = [Prediction.from_raw(p) for p in raw_predictions]
    return tuple(sorted(predictions, key=lambda p: p.probability, reverse=True))


def is_confident(prediction: Prediction | None, threshold: float = CONFIDENCE_THRESHOLD) -> bool:
    return prediction is not None and prediction.probability > threshold


def next_candidate(
    ranked: tuple[Prediction, ...],
    cursor: int,
    threshold: float = CONFIDENCE_THRESHOLD,
) -> tuple[int, Prediction] | None:
    """Next prediction after ``cursor`` worth offering, or None when exhausted."""
    index = cursor + 1
    if index < len(ranked) and is_confident(ranked[index], threshold):
        return index, ranked[index]
    return None
