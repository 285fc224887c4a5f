"""Provider call parameters for the chat and embedding models.

Both models are addressed through LiteLLM, so each config renders itself as
keyword arguments for ``litellm.acompletion`` / ``litellm.aembedding``.

Chat priority chain (low → high):
    .env defaults (Settings)  →  per-call overrides passed to ``LLMService.chat``
"""

from __future__ import annotations

from pydantic import BaseModel, Field

_CHAT_PARAMS = ("model", "max_tokens", "temperature", "top_p", "stop")


class LLMConfig(BaseModel):
    """Chat sampling parameters; ``None`` leaves the provider default."""

    model: str | None = Field(default=None, description="LiteLLM model identifier")
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    stop: list[str] | None = None

    def merge(self, overrides: LLMConfig | None) -> LLMConfig:
        """Return a new config where non-None fields of *overrides* win."""
        if overrides is None:
            return self.model_copy()
        merged = self.model_dump(exclude_none=True)
        merged.update(overrides.model_dump(exclude_none=True))
        return LLMConfig(**merged)

    def to_litellm_kwargs(self) -> dict:
        return {
            name: getattr(self, name)
            for name in _CHAT_PARAMS
            if getattr(self, name) is not None
        }


class EmbeddingConfig(BaseModel):
    """Embedding model and the vector size the collection is built with.

    ``request_dimensions`` asks the provider to truncate its output to
    ``dimension`` (Gemini and OpenAI v3 embedding models support this); leave
    it off for models with a fixed output size.
    """

    model: str
    dimension: int = Field(gt=0)
    request_dimensions: bool = False

    def to_litellm_kwargs(self) -> dict:
        kw: dict = {"model": self.model}
        if self.request_dimensions:
            kw["dimensions"] = self.dimension
        return kw
