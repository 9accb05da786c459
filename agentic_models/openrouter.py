import logging
from typing import Dict, List, Optional

import requests

from agentic_models.base import BaseLLMEngine
from main_configs import NBAConfigs, OPENROUTER_API_KEY, OPENROUTER_BASE_URL, OPENROUTER_MODEL_ID
from nba_engine.errors import ModelInvocationFailure

logger = logging.getLogger(__name__)


class OpenRouterEngine(BaseLLMEngine):
    """OpenAI-compatible chat completions over plain HTTP."""

    def __init__(
        self,
        model_name: str = OPENROUTER_MODEL_ID,
        api_key: Optional[str] = OPENROUTER_API_KEY,
        base_url: str = OPENROUTER_BASE_URL,
        timeout_seconds: Optional[int] = None,
    ):
        if not model_name or not api_key:
            raise ValueError("OpenRouter API key or model name missing")

        self.model_name = model_name
        self.api_key = api_key
        self.api_url = f"{base_url.rstrip('/')}/chat/completions"
        self.timeout = timeout_seconds or NBAConfigs.MODEL_TIMEOUT_SECONDS

    def generate(self, messages: List[Dict[str, str]]) -> str:
        payload = {
            "model": self.model_name,
            "messages": messages,
            "temperature": 0.7,
            "max_tokens": 2000,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "HCP Next Best Action",
        }

        try:
            resp = requests.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.exceptions.RequestException as exc:
            logger.error("OpenRouter request failed: %s", exc)
            raise ModelInvocationFailure("Model provider call failed") from exc
        except ValueError as exc:
            raise ModelInvocationFailure("Model provider returned a non-JSON body") from exc

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ModelInvocationFailure("Model provider response has no content") from exc

        if not content or not content.strip():
            raise ModelInvocationFailure("Model provider returned an empty response")
        return content.strip()
