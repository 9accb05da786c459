from abc import ABC, abstractmethod
from typing import List, Dict

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant that answers strictly in JSON."


class BaseLLMEngine(ABC):
    """
    Contract for all LLM backends.

    Implementations raise ModelInvocationFailure on transport errors,
    timeouts, non-2xx responses or empty output. They never retry.
    """

    @abstractmethod
    def generate(self, messages: List[Dict[str, str]]) -> str:
        pass

    def complete(self, instruction_text: str, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> str:
        """Single-shot call: instruction text in, structured text out."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": instruction_text},
        ]
        return self.generate(messages)
