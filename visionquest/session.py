"""Review/correction flow for one analyzed frame at a time.

Phases::

    IDLE --analyze--> ANALYZING --results--> REVIEWING{cursor}
    REVIEWING --confirm--> FINALIZED --(delay)--> IDLE
    REVIEWING --reject--> REVIEWING{cursor=1} | MANUAL_ENTRY
    MANUAL_ENTRY --submit--> FINALIZED,  MANUAL_ENTRY --cancel--> REVIEWING
    any --new_frame_selected--> IDLE

All transitions run on one event loop. Inference and HTTP calls go to
worker threads; insight fetches and the delayed reset are background tasks
owned by the machine.
"""

import asyncio

from loguru import logger

from .classifier import Classifier, endpoint_urls, load_keras_classifier
from .config import CONFIDENCE_THRESHOLD, RESET_DELAY_SECONDS, format_model_url, save_model_url
from .exceptions import (
    AnalysisBusyError,
    InputUnavailableError,
    InvalidTransitionError,
    ModelLoadError,
    ValidationError,
)
from .feedback import FeedbackLogger
from .frame import FrameNormalizer
from .insight import InsightFetcher
from .models import FeedbackEvent, FeedbackHistory, FeedbackKind, Phase, SessionState
from .ranking import is_confident, next_candidate, rank

UNRECOGNIZED_MESSAGE = "Subject unrecognized."
INPUT_UNAVAILABLE_MESSAGE = "Input source unavailable"
ANALYSIS_ERROR_MESSAGE = "Analysis engine error."
MODEL_LOAD_MESSAGE = "Failed to load model. Check your Teachable Machine link."

ANALYZABLE_PHASES = (Phase.IDLE, Phase.REVIEWING, Phase.MANUAL_ENTRY)


class InteractionStateMachine:
    def __init__(
        self,
        fetcher: InsightFetcher,
        feedback_logger: FeedbackLogger,
        classifier: Classifier | None = None,
        loader=load_keras_classifier,
        settings_store=None,
        normalizer: FrameNormalizer | None = None,
        threshold: float = CONFIDENCE_THRESHOLD,
        reset_delay: float = RESET_DELAY_SECONDS,
        sleep=asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.feedback_logger = feedback_logger
        self.classifier = classifier
        self.loader = loader
        self.settings_store = settings_store
        self.normalizer = normalizer or FrameNormalizer()
        self.threshold = threshold
        self.reset_delay = reset_delay
        self._sleep = sleep

        self.phase = Phase.IDLE
        self.session: SessionState | None = None
        self.error: str | None = None
        self.model_url: str | None = None

        self._insight_task: asyncio.Task | None = None
        self._reset_task: asyncio.Task | None = None
        self._insight_token = 0
        self._analysis_token = 0
        self._predicting = False

    # ------------------------------
    # Queries
    # ------------------------------
    @property
    def history(self) -> FeedbackHistory:
        return self.feedback_logger.history

    @property
    def insight_loading(self) -> bool:
        return bool(self.session and self.session.insight_loading)

    @property
    def can_analyze(self) -> bool:
        """Guard for the analyze control; the classifier is not re-entrant."""
        return (
            self.classifier is not None
            and self.phase in ANALYZABLE_PHASES
            and not self.insight_loading
            and not self._predicting
        )

    # ------------------------------
    # Helpers
    # ------------------------------
    def _require(self, *phases: Phase) -> SessionState:
        if self.phase not in phases or self.session is None:
            raise InvalidTransitionError(f"Not allowed while {self.phase.value}")
        return self.session

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _discard_session(self) -> None:
        self._cancel(self._insight_task)
        self._cancel(self._reset_task)
        self._insight_task = None
        self._reset_task = None
        self._insight_token += 1
        self._analysis_token += 1
        self.session = None

    def _fail(self, message: str) -> None:
        self.session = SessionState(last_error=message)
        self.error = message
        self.phase = Phase.ERROR

    def _start_insight(self, session: SessionState) -> None:
        self._cancel(self._insight_task)
        self._insight_token += 1
        session.insight = None
        session.insight_loading = True
        self._insight_task = asyncio.create_task(
            self._load_insight(session, session.candidate_cursor, self._insight_token)
        )

    async def _load_insight(self, session: SessionState, cursor: int, token: int) -> None:
        label = session.predictions[cursor].label
        text = await self.fetcher.fetch_insight(label)
        if self.session is not session or session.candidate_cursor != cursor or token != self._insight_token:
            logger.debug("Discarding stale insight for {!r}", label)
            return
        session.insight = text
        session.insight_loading = False

    def _schedule_reset(self, session: SessionState) -> None:
        if self.session is session:
            self._reset_task = asyncio.create_task(self._reset_after_delay(session))

    async def _reset_after_delay(self, session: SessionState) -> None:
        await self._sleep(self.reset_delay)
        if self.session is session:
            self._discard_session()
            self.phase = Phase.IDLE
            logger.info("Session reset after feedback")

    # ------------------------------
    # Model
    # ------------------------------
    async def load_model(self, endpoint: str) -> bool:
        if self.phase is Phase.ANALYZING or self._predicting:
            raise AnalysisBusyError("Analysis in progress")
        url = format_model_url(endpoint)
        self._discard_session()
        self.phase = Phase.LOADING_MODEL
        self.error = None

        model_url, metadata_url = endpoint_urls(url)
        try:
            self.classifier = await asyncio.to_thread(self.loader, model_url, metadata_url)
        except Exception as e:
            logger.error("Model loading error for {}: {}", url, e)
            self.classifier = None
            self.error = MODEL_LOAD_MESSAGE
            self.phase = Phase.ERROR
            return False

        if self.settings_store is not None:
            save_model_url(self.settings_store, url)
        self.model_url = url
        self.phase = Phase.IDLE
        return True

    # ------------------------------
    # Transitions
    # ------------------------------
    async def analyze(self, source, is_mirrored: bool = False) -> SessionState | None:
        if self.phase is Phase.ANALYZING or self.insight_loading or self._predicting:
            raise AnalysisBusyError("Analysis in progress")
        if self.phase not in ANALYZABLE_PHASES:
            raise InvalidTransitionError(f"Cannot analyze while {self.phase.value}")
        if self.classifier is None:
            raise ModelLoadError("No model loaded")

        self._discard_session()
        token = self._analysis_token
        self.phase = Phase.ANALYZING
        self.error = None

        try:
            buffer = self.normalizer.normalize(source, is_mirrored)
        except InputUnavailableError as e:
            logger.warning("Analysis skipped: {}", e)
            self._fail(INPUT_UNAVAILABLE_MESSAGE)
            return self.session

        # stays set until predict returns, even for an abandoned frame
        self._predicting = True
        try:
            raw = await asyncio.to_thread(self.classifier.predict, buffer)
            ranked = rank(raw)
        except Exception as e:
            if token == self._analysis_token:
                logger.error("Analysis error: {}", e)
                self._fail(ANALYSIS_ERROR_MESSAGE)
            return self.session
        finally:
            self._predicting = False

        if token != self._analysis_token:
            logger.debug("Dropping results for an abandoned frame")
            return None

        session = SessionState(predictions=ranked)
        self.session = session
        self.phase = Phase.REVIEWING
        top = session.current_candidate
        logger.info("Top prediction: {}", f"{top.label} ({top.probability:.0%})" if top else "none")

        if is_confident(top, self.threshold):
            self._start_insight(session)
        else:
            session.insight = UNRECOGNIZED_MESSAGE
        return session

    async def confirm(self) -> FeedbackEvent:
        session = self._require(Phase.REVIEWING)
        label = session.current_label
        self._cancel(self._insight_task)
        session.insight_loading = False

        event = self.feedback_logger.record(label, label, FeedbackKind.CONFIRMATION)
        session.feedback_given = True
        self.phase = Phase.FINALIZED

        session.feedback_response = await self.fetcher.fetch_feedback_ack(label, True)
        self._schedule_reset(session)
        return event

    async def reject(self) -> SessionState:
        session = self._require(Phase.REVIEWING)
        # the cascade only ever offers the second-ranked prediction
        candidate = next_candidate(session.predictions, 0, self.threshold) if session.candidate_cursor == 0 else None
        if candidate is not None:
            session.candidate_cursor = candidate[0]
            self._start_insight(session)
        else:
            self._cancel(self._insight_task)
            session.insight_loading = False
            session.manual_entry_active = True
            self.phase = Phase.MANUAL_ENTRY
        return session

    def open_manual_entry(self) -> SessionState:
        session = self._require(Phase.REVIEWING)
        session.manual_entry_active = True
        self.phase = Phase.MANUAL_ENTRY
        return session

    def cancel_manual(self) -> SessionState:
        session = self._require(Phase.MANUAL_ENTRY)
        session.manual_entry_active = False
        self.phase = Phase.REVIEWING
        return session

    async def submit_manual(self, label: str) -> FeedbackEvent:
        session = self._require(Phase.MANUAL_ENTRY)
        corrected = (label or "").strip()
        if not corrected:
            raise ValidationError("Enter a label before logging feedback")

        self._cancel(self._insight_task)
        session.insight_loading = False
        event = self.feedback_logger.record(session.current_label, corrected, FeedbackKind.CORRECTION)
        session.feedback_given = True
        self.phase = Phase.FINALIZED

        ack = await self.fetcher.fetch_feedback_ack(corrected, False)
        session.feedback_response = f'Recorded "{corrected}" as correction. {ack}'
        self._schedule_reset(session)
        return event

    def new_frame_selected(self) -> None:
        self._discard_session()
        self.error = None
        if self.phase is not Phase.LOADING_MODEL:
            self.phase = Phase.IDLE

    def clear_history(self) -> FeedbackHistory:
        return self.feedback_logger.clear()

    async def settle(self) -> None:
        """Wait for pending insight fetches and the post-feedback reset."""
        while True:
            pending = [t for t in (self._insight_task, self._reset_task) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)


def build_machine(store, generator, loader=load_keras_classifier) -> InteractionStateMachine:
    """Wire the machine to a persistence store and a text generator."""
    return InteractionStateMachine(
        fetcher=InsightFetcher(generator),
        feedback_logger=FeedbackLogger(store),
        loader=loader,
        settings_store=store,
    )
