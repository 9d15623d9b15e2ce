"""Shared fakes for the classifier, text generator and timers."""

import threading

import pytest
from PIL import Image

from visionquest.feedback import FeedbackLogger
from visionquest.insight import InsightFetcher
from visionquest.session import InteractionStateMachine
from visionquest.storage import MemoryStore

FIXED_NOW = 1_700_000_000_000


class SleepRecorder:
    """Async stand-in for asyncio.sleep that returns at once."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class FakeClassifier:
    def __init__(self, predictions=None, error=None, gate=None):
        self.predictions = predictions or []
        self.error = error
        self.gate = gate
        self.buffers = []

    def predict(self, buffer):
        self.buffers.append(buffer.copy())
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error:
            raise self.error
        return list(self.predictions)


class FakeGenerator:
    """Replays scripted outcomes; exceptions are raised, strings returned.

    ``gates`` maps a label to a threading.Event the call waits on, so a
    test can hold one request in flight.
    """

    def __init__(self, outcomes=None, default="A friendly fact.", gates=None):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.gates = gates or {}
        self.calls = []

    def generate(self, prompt, params):
        self.calls.append((prompt, params))
        for label, gate in self.gates.items():
            if f'"{label}"' in prompt:
                gate.wait(timeout=5)
                return f"{label} fact"
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return self.default


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def image():
    return Image.new("RGB", (300, 200), color=(120, 40, 200))


@pytest.fixture
def make_machine(store, sleep):
    def _make(predictions=None, generator=None, classifier=None, **kwargs):
        generator = generator or FakeGenerator()
        if classifier is None:
            classifier = FakeClassifier(predictions)
        machine = InteractionStateMachine(
            fetcher=InsightFetcher(generator, sleep=sleep),
            feedback_logger=FeedbackLogger(store, clock=lambda: FIXED_NOW),
            classifier=classifier,
            settings_store=store,
            sleep=sleep,
            **kwargs,
        )
        machine.generator = generator
        return machine

    return _make


@pytest.fixture
def gate():
    event = threading.Event()
    yield event
    event.set()
