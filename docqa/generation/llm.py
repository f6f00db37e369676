"""
Language Model Clients
-----------------------
Two implementations with an identical async complete() interface:

  OpenAIModel    -- OpenAI chat models (gpt-4o-mini, gpt-4o)
  AnthropicModel -- Anthropic (claude-haiku-4-5, claude-sonnet-4-6)

Both take a fully rendered prompt string and return the raw completion
text.  Token usage is accumulated per instance so a request can report
its generation cost.
"""
from __future__ import annotations

from langsmith import traceable
from loguru import logger

from docqa.errors import CompletionFailure


# ---------------------------------------------------------------------------
# Model pricing table  (input_$/M, output_$/M)
# ---------------------------------------------------------------------------

_MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o-mini":               (0.150,  0.600),
    "gpt-4o":                    (2.500, 10.000),
    "claude-haiku-4-5-20251001": (0.800,  4.000),
    "claude-sonnet-4-6":         (3.000, 15.000),
}


def _cost_usd(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Compute estimated cost in USD for a given model and token counts."""
    rates = _MODEL_PRICING.get(model, (0.150, 0.600))
    return (prompt_tokens * rates[0] + completion_tokens * rates[1]) / 1_000_000


class _UsageMixin:
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    calls: int = 0

    def _record(self, prompt_tokens: int, completion_tokens: int) -> None:
        self.prompt_tokens += prompt_tokens
        self.completion_tokens += completion_tokens
        self.calls += 1

    @property
    def estimated_cost_usd(self) -> float:
        return _cost_usd(self.model, self.prompt_tokens, self.completion_tokens)

    def usage_summary(self) -> dict:
        return {
            "model": self.model,
            "calls": self.calls,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "estimated_cost_usd": round(self.estimated_cost_usd, 6),
        }


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class OpenAIModel(_UsageMixin):
    """Single-prompt completions using OpenAI chat models."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 2048,
        temperature: float = 0.0,
        client=None,
    ) -> None:
        from openai import AsyncOpenAI  # lazy import keeps import graph clean
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client if client is not None else AsyncOpenAI()

    @traceable(name="complete_openai", run_type="llm")
    async def complete(self, prompt: str) -> str:
        logger.debug(f"[OpenAIModel] {self.model} | prompt={len(prompt)} chars")
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as exc:
            logger.error(f"[OpenAIModel] Completion failed: {exc}")
            raise CompletionFailure(f"OpenAI completion failed: {exc}") from exc

        answer = response.choices[0].message.content or ""
        usage = response.usage
        if usage is not None:
            self._record(usage.prompt_tokens, usage.completion_tokens)
            logger.debug(
                f"[OpenAIModel] Done | prompt={usage.prompt_tokens} "
                f"completion={usage.completion_tokens} | "
                f"cost=${_cost_usd(self.model, usage.prompt_tokens, usage.completion_tokens):.5f}"
            )
        return answer


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

class AnthropicModel(_UsageMixin):
    """
    Single-prompt completions using Anthropic Claude models.

    Supported models:
      claude-haiku-4-5-20251001  (fast, $0.80/M in, $4.00/M out)
      claude-sonnet-4-6          (higher quality, $3.00/M in, $15.00/M out)
    """

    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        max_tokens: int = 2048,
        temperature: float = 0.0,
        client=None,
    ) -> None:
        from anthropic import AsyncAnthropic  # lazy import
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client if client is not None else AsyncAnthropic()

    @traceable(name="complete_anthropic", run_type="llm")
    async def complete(self, prompt: str) -> str:
        logger.debug(f"[AnthropicModel] {self.model} | prompt={len(prompt)} chars")
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as exc:
            logger.error(f"[AnthropicModel] Completion failed: {exc}")
            raise CompletionFailure(f"Anthropic completion failed: {exc}") from exc

        answer = response.content[0].text if response.content else ""
        # Anthropic usage: input_tokens / output_tokens
        self._record(response.usage.input_tokens, response.usage.output_tokens)
        logger.debug(
            f"[AnthropicModel] Done | input={response.usage.input_tokens} "
            f"output={response.usage.output_tokens}"
        )
        return answer


def build_model(config: dict):
    """Instantiate the completion model named by the ``llm`` config section."""
    cfg = config.get("llm", {})
    provider = cfg.get("provider", "openai")
    kwargs = {
        "model": cfg.get("model", "gpt-4o-mini"),
        "max_tokens": cfg.get("max_tokens", 2048),
        "temperature": cfg.get("temperature", 0.0),
    }
    if provider == "anthropic":
        return AnthropicModel(**kwargs)
    if provider == "openai":
        return OpenAIModel(**kwargs)
    raise ValueError(f"Unknown llm provider '{provider}'")
