"""Black-box collaborators invoked by actions."""

from .ai import AIProcessor, HeuristicAIProcessor, OllamaAIProcessor, create_ai_processor
from .notify import Notifier, LogNotifier, TelegramNotifier, create_notifier

__all__ = [
    "AIProcessor",
    "HeuristicAIProcessor",
    "OllamaAIProcessor",
    "create_ai_processor",
    "Notifier",
    "LogNotifier",
    "TelegramNotifier",
    "create_notifier",
]
