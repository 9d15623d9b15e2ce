"""Supplementary commentary about recognized labels.

Nothing here raises to the caller: when the generator keeps failing the
fetchers answer with canned text, so the review flow never waits on the
commentary service.
"""

import asyncio
from typing import Protocol

from loguru import logger

from .config import INSIGHT_RETRY_POLICY
from .models import RetryPolicy
from .retry import RetryingCaller

INSIGHT_FALLBACK = "The model has high confidence in this identification. What else can you show it?"
CONFIRM_FALLBACK = "Glad to hear it! Analysis confirmed."
CORRECTION_FALLBACK = "Understood. Feedback logged for model refinement."

INSIGHT_PARAMS = {"temperature": 0.7, "top_k": 40, "top_p": 0.95}
ACK_PARAMS = {"temperature": 0.8}


class TextGenerator(Protocol):
    def generate(self, prompt: str, params: dict) -> str: ...


def insight_prompt(label: str) -> str:
    return (
        "Provide a short, 2-sentence interesting insight or fact about these items "
        f'identified in an image: "{label}".\n\n'
        "Note: The image is in horizontal, regular orientation.\n\n"
        "If there is more than one item, try to mention how they relate or give a quick "
        "fact about the most interesting one. Keep it friendly and informative."
    )


def feedback_prompt(label: str, was_correct: bool) -> str:
    verdict = "correct" if was_correct else "incorrect"
    return (
        f'The vision model identified the following: "{label}" (assuming horizontal orientation). '
        f"The user marked this identification as {verdict}.\n"
        'If it was correct, give a quick "Great!" style encouragement.\n'
        "If it was incorrect, give a humble acknowledgement that we'll use this to improve "
        "future training data.\n"
        "Keep the response under 15 words."
    )


class InsightFetcher:
    def __init__(self, generator: TextGenerator, policy: RetryPolicy = INSIGHT_RETRY_POLICY, sleep=asyncio.sleep):
        self.generator = generator
        self.caller = RetryingCaller(policy, sleep=sleep)

    async def _generate(self, prompt: str, params: dict) -> str:
        text = await self.caller.call(lambda: asyncio.to_thread(self.generator.generate, prompt, params))
        if not text or not text.strip():
            raise ValueError("empty response from text generator")
        return text.strip()

    async def fetch_insight(self, label: str) -> str:
        try:
            return await self._generate(insight_prompt(label), INSIGHT_PARAMS)
        except Exception as e:
            logger.error("Insight fetch failed for {!r}: {}", label, e)
            return INSIGHT_FALLBACK

    async def fetch_feedback_ack(self, label: str, was_correct: bool) -> str:
        try:
            return await self._generate(feedback_prompt(label, was_correct), ACK_PARAMS)
        except Exception as e:
            logger.error("Feedback acknowledgement failed for {!r}: {}", label, e)
            return CONFIRM_FALLBACK if was_correct else CORRECTION_FALLBACK
