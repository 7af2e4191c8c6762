"""
AI processing collaborators for ai_process actions.

The engine only relies on the AIProcessor contract; any implementation
satisfying it is valid, including the heuristic fallback.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp
import structlog

from ..core.config import LLMConfig
from ..core.errors import ActionError

logger = structlog.get_logger()


SENTIMENTS = ("positive", "negative", "neutral")


class AIProcessor(ABC):
    """Abstract text-processing backend."""

    @abstractmethod
    async def summarize(self, text: str) -> str:
        """Short summary of text."""

    @abstractmethod
    async def extract_entities(self, text: str) -> list[str]:
        """Notable entities mentioned in text."""

    @abstractmethod
    async def analyze_sentiment(self, text: str) -> str:
        """One of 'positive', 'negative', 'neutral'."""


class HeuristicAIProcessor(AIProcessor):
    """Model-free fallback used when no LLM is configured."""

    POSITIVE_WORDS = {"good", "great", "excellent", "amazing"}
    NEGATIVE_WORDS = {"bad", "terrible", "awful", "horrible"}

    def __init__(self, summary_length: int = 100, max_entities: int = 10):
        self.summary_length = summary_length
        self.max_entities = max_entities

    async def summarize(self, text: str) -> str:
        return f"Summary of: {text[:self.summary_length]}..."

    async def extract_entities(self, text: str) -> list[str]:
        words = text.split()
        return [w for w in words if len(w) > 5][:self.max_entities]

    async def analyze_sentiment(self, text: str) -> str:
        words = text.lower().split()
        positive = sum(1 for w in words if w in self.POSITIVE_WORDS)
        negative = sum(1 for w in words if w in self.NEGATIVE_WORDS)
        if positive > negative:
            return "positive"
        if negative > positive:
            return "negative"
        return "neutral"


class OllamaAIProcessor(AIProcessor):
    """AIProcessor backed by a local Ollama server."""

    def __init__(self, config: LLMConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session
        self._owns_session = session is None

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    async def summarize(self, text: str) -> str:
        prompt = (
            "Summarize the following page content in two or three sentences.\n\n"
            f"{text}"
        )
        return (await self._generate(prompt)).strip()

    async def extract_entities(self, text: str) -> list[str]:
        prompt = (
            "List the named entities (people, organizations, places, products) "
            "in the following text as a JSON array of strings. Reply with the "
            f"array only.\n\n{text}"
        )
        reply = await self._generate(prompt)
        match = re.search(r"\[.*\]", reply, re.DOTALL)
        if not match:
            return []
        try:
            entities = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.warning("entity_reply_unparseable", reply=reply[:200])
            return []
        return [str(e) for e in entities if e]

    async def analyze_sentiment(self, text: str) -> str:
        prompt = (
            "Classify the overall sentiment of the following text. Reply with "
            f"exactly one word: positive, negative or neutral.\n\n{text}"
        )
        reply = (await self._generate(prompt)).strip().lower()
        for sentiment in SENTIMENTS:
            if sentiment in reply:
                return sentiment
        return "neutral"

    async def _generate(self, prompt: str) -> str:
        if self._session is None:
            self._session = aiohttp.ClientSession()

        url = f"{self.config.base_url.rstrip('/')}/api/generate"
        payload = {
            "model": self.config.model,
            "prompt": prompt,
            "stream": False,
            "options": {"num_predict": self.config.max_tokens},
        }
        try:
            async with self._session.post(
                url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
            ) as response:
                response.raise_for_status()
                data = await response.json()
        except aiohttp.ClientError as e:
            raise ActionError(f"LLM request failed: {e}", action_type="ai_process") from e

        return data.get("response", "")


def create_ai_processor(config: LLMConfig) -> AIProcessor:
    """Pick an AI backend from configuration."""
    if config.enabled and config.provider == "ollama":
        logger.info("ai_processor_selected", provider="ollama", model=config.model)
        return OllamaAIProcessor(config)
    logger.info("ai_processor_selected", provider="heuristic")
    return HeuristicAIProcessor()
