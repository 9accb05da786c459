import logging
from typing import Optional

from agentic_models.base import BaseLLMEngine
from main_configs import NBAConfigs

logger = logging.getLogger(__name__)


def get_llm_engine(provider: Optional[str] = None) -> BaseLLMEngine:
    """
    Strategy:
    - "gemini"     → Google Gemini via google-genai (default)
    - "openrouter" → any OpenRouter-hosted chat model
    """
    mode = (provider or NBAConfigs.MODEL_PROVIDER or "gemini").lower()

    if mode == "openrouter":
        from agentic_models.openrouter import OpenRouterEngine
        return OpenRouterEngine()

    if mode == "gemini":
        from agentic_models.gemini import GeminiEngine
        return GeminiEngine()

    raise ValueError(f"Unsupported model provider: {provider}")
