import logging
from typing import List, Dict, Optional

from google import genai
from google.genai import types
from google.genai.errors import APIError

from agentic_models.base import BaseLLMEngine
from main_configs import GEMINI_API_KEY, GEMINI_MODEL_ID, NBAConfigs
from nba_engine.errors import ModelInvocationFailure

logger = logging.getLogger(__name__)


class GeminiEngine(BaseLLMEngine):
    def __init__(
        self,
        model_name: str = GEMINI_MODEL_ID,
        api_key: Optional[str] = GEMINI_API_KEY,
        timeout_seconds: Optional[int] = None,
    ):
        if not model_name or not api_key:
            raise ValueError("Gemini API key or model name missing")

        self.model_name = model_name
        timeout = timeout_seconds or NBAConfigs.MODEL_TIMEOUT_SECONDS
        # HttpOptions.timeout is expressed in milliseconds
        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=timeout * 1000),
        )

    def _convert_messages(self, messages: List[Dict[str, str]]):
        """
        Splits system text (sent as system_instruction) from the conversation turns.
        """
        system_parts = []
        contents = []
        for m in messages:
            text_content = (m.get("content") or "").strip()
            # Skip empty messages that trigger the 'data' initialization error
            if not text_content:
                continue

            if m.get("role") in ["system", "developer"]:
                system_parts.append(text_content)
                continue

            role = "user" if m.get("role") == "user" else "model"
            contents.append(types.Content(
                role=role,
                parts=[types.Part.from_text(text=text_content)]
            ))

        # Ensure turn-taking: Gemini is strict about starting with a 'user' turn
        if contents and contents[0].role != "user":
            contents[0].role = "user"

        return "\n\n".join(system_parts) or None, contents

    def generate(self, messages: List[Dict[str, str]]) -> str:
        system_instruction, contents = self._convert_messages(messages)

        config = types.GenerateContentConfig(
            temperature=0.7,
            system_instruction=system_instruction,
            response_mime_type="application/json",
        )

        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=config
            )
        except APIError as e:
            logger.error("Gemini API error: %s", e)
            raise ModelInvocationFailure("Model provider returned an error") from e
        except Exception as e:
            logger.exception("Gemini unexpected failure")
            raise ModelInvocationFailure("Model provider call failed") from e

        text = (response.text or "").strip()
        if not text:
            raise ModelInvocationFailure("Model provider returned an empty response")
        return text
