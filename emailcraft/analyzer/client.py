"""
Scoring Model Client

The dimension scorers and the reasoning writer talk to Claude through this
client. A failed call comes back as an unsuccessful AnalysisResponse so a
scorer can turn it into AnalysisFailed with its own dimension attached.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import anthropic

logger = logging.getLogger(__name__)


# USD per million tokens, (input, output)
MODEL_PRICING: Dict[str, Tuple[float, float]] = {
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "claude-opus-4-20250514": (15.0, 75.0),
    "claude-3-5-haiku-20241022": (0.8, 4.0),
}
FALLBACK_PRICING = MODEL_PRICING["claude-sonnet-4-20250514"]


def usage_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    input_rate, output_rate = MODEL_PRICING.get(model, FALLBACK_PRICING)
    return (input_tokens * input_rate + output_tokens * output_rate) / 1_000_000


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: "TokenUsage"):
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens


@dataclass
class AnalysisResponse:
    """Text reply of one scoring call, or the reason it has none."""
    content: str
    usage: TokenUsage
    model: str
    stop_reason: str
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def failure(cls, model: str, stop_reason: str, error: str) -> "AnalysisResponse":
        return cls(
            content="",
            usage=TokenUsage(),
            model=model,
            stop_reason=stop_reason,
            success=False,
            error=error,
        )


class ClaudeClient:
    """
    Claude access for email scoring.

    Screenshots of the rendered email are attached as PNG image blocks ahead
    of the prompt text. Token counts accumulate across calls so one analysis
    run can report what it spent.
    """

    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    MAX_TOKENS = 1000
    TEMPERATURE = 0.3

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        retry_base_delay: float = 1.0,
    ):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY not provided")

        self.model = model or self.DEFAULT_MODEL
        # Backoff before retry n is retry_base_delay * 2**n
        self.retry_base_delay = retry_base_delay
        self.async_client = anthropic.AsyncAnthropic(api_key=self.api_key)

        self.total_usage = TokenUsage()
        self.call_count = 0

    @staticmethod
    def _build_content(prompt: str, screenshots: Optional[List[str]]) -> Any:
        if not screenshots:
            return prompt
        blocks: List[Dict[str, Any]] = [
            {
                "type": "image",
                "source": {"type": "base64", "media_type": "image/png", "data": shot},
            }
            for shot in screenshots
        ]
        blocks.append({"type": "text", "text": prompt})
        return blocks

    async def analyze(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = MAX_TOKENS,
        temperature: float = TEMPERATURE,
        images: Optional[List[str]] = None,
    ) -> AnalysisResponse:
        """
        Run one scoring prompt.

        Args:
            prompt: Scoring instructions plus the email under review
            system: Scorer persona
            images: Base64 PNG screenshots of the rendered email
        """
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": self._build_content(prompt, images)}],
        }
        if system:
            request["system"] = system

        try:
            message = await self.async_client.messages.create(**request)
        except anthropic.APIError as e:
            logger.error(f"Scoring call to {self.model} failed: {e}")
            return AnalysisResponse.failure(self.model, "error", str(e))

        text = "".join(block.text for block in message.content if hasattr(block, "text"))
        usage = TokenUsage(
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
        )
        self.total_usage.add(usage)
        self.call_count += 1
        logger.debug(
            f"Scoring call used {usage.input_tokens}+{usage.output_tokens} tokens "
            f"(${usage_cost(self.model, usage.input_tokens, usage.output_tokens):.4f})"
        )

        return AnalysisResponse(
            content=text,
            usage=usage,
            model=self.model,
            stop_reason=message.stop_reason or "",
        )

    async def analyze_with_retry(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_retries: int = 3,
        **kwargs,
    ) -> AnalysisResponse:
        """Call analyze() up to max_retries times, backing off between failures."""
        response = None
        for attempt in range(max_retries):
            if attempt:
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Retrying scoring call ({attempt + 1}/{max_retries}) in {delay}s: "
                    f"{response.error}"
                )
                await asyncio.sleep(delay)

            response = await self.analyze(prompt, system, **kwargs)
            if response.success:
                return response

        last_error = response.error if response else "no attempts made"
        return AnalysisResponse.failure(
            self.model,
            "max_retries",
            f"Gave up after {max_retries} attempts: {last_error}",
        )

    def get_total_cost(self) -> float:
        return usage_cost(self.model, self.total_usage.input_tokens, self.total_usage.output_tokens)

    def get_usage_summary(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "total_calls": self.call_count,
            "input_tokens": self.total_usage.input_tokens,
            "output_tokens": self.total_usage.output_tokens,
            "total_tokens": self.total_usage.total_tokens,
            "cost_usd": round(self.get_total_cost(), 6),
        }
