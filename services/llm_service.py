"""Chat LLM service powered by LiteLLM.

Supports any provider LiteLLM supports via model name prefix:
    - gemini/gemini-2.0-flash
    - openai/gpt-4o
    - anthropic/claude-sonnet-4-20250514
"""

from __future__ import annotations

import logging

import litellm

from config.llm_config import LLMConfig
from models.conversation import Turn, TurnRole
from services.concurrency import ProviderLimiter

logger = logging.getLogger(__name__)

# Conversation roles → OpenAI-style roles understood by LiteLLM
_ROLE_MAP = {
    TurnRole.USER: "user",
    TurnRole.MODEL: "assistant",
}


class LLMService:
    """Thin wrapper around ``litellm.acompletion()`` for conversational calls.

    Each call is stateless: the "session" is the system instruction plus the
    prior turns, rebuilt from the stored history every time.
    """

    def __init__(self, config: LLMConfig, limiter: ProviderLimiter | None = None):
        self._config = config
        self._limiter = limiter or ProviderLimiter()

    @property
    def model(self) -> str | None:
        return self._config.model

    @staticmethod
    def build_messages(
        history: list[Turn], prompt: str, system: str = "",
    ) -> list[dict]:
        """Assemble the provider message list: system, prior turns, prompt."""
        messages: list[dict] = []
        if system:
            messages.append({"role": "system", "content": system})
        for turn in history:
            if not turn.text.strip():
                continue
            messages.append({"role": _ROLE_MAP[turn.role], "content": turn.text})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def chat(
        self,
        history: list[Turn],
        prompt: str,
        system: str = "",
        overrides: LLMConfig | None = None,
    ) -> str:
        """Send one user message in the context of *history*; return the reply text.

        Args:
            history: Prior turns, oldest first.
            prompt: The (possibly context-augmented) user message.
            system: System instruction.
            overrides: Per-call parameters; non-None fields replace the defaults.
        """
        kwargs = self._config.merge(overrides).to_litellm_kwargs()
        kwargs["messages"] = self.build_messages(history, prompt, system)

        response = await self._limiter.call(litellm.acompletion, **kwargs)
        choice = response.choices[0]
        content = choice.message.content or ""
        if not content:
            logger.warning(
                "LLM returned empty content (finish_reason=%s)", choice.finish_reason,
            )
        return content
