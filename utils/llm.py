"""
OpenAI LLM helpers — used by the default agent task implementation.

Errors are not retried here: they propagate to the task wrapper, which
classifies them and lets the host's retry policy decide.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from openai import OpenAI

import config

log = logging.getLogger(__name__)

_client: OpenAI | None = None


def get_client() -> OpenAI:
    global _client
    if _client is None:
        _client = OpenAI(api_key=config.OPENAI_API_KEY)
    return _client


@dataclass
class ChatResult:
    content: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def cost(self) -> float:
        return estimate_cost(self.input_tokens, self.output_tokens)


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
    """USD cost of a completion at the configured per-million-token prices."""
    return (
        input_tokens / 1_000_000 * config.INPUT_COST_PER_1M
        + output_tokens / 1_000_000 * config.OUTPUT_COST_PER_1M
    )


def chat(
    system: str,
    user: str,
    model: str | None = None,
    json_mode: bool = False,
    temperature: float = 0.2,
    max_tokens: int = 4096,
) -> ChatResult:
    """Send a chat completion request and return the message with token usage."""
    client = get_client()
    kwargs: dict = {
        "model": model or config.OPENAI_MODEL,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    resp = client.chat.completions.create(**kwargs)
    usage = resp.usage
    return ChatResult(
        content=resp.choices[0].message.content or "",
        input_tokens=usage.prompt_tokens if usage else 0,
        output_tokens=usage.completion_tokens if usage else 0,
    )


def chat_json(system: str, user: str, **kwargs) -> tuple[dict, ChatResult]:
    """Send a chat completion and parse the JSON response."""
    result = chat(system, user, json_mode=True, **kwargs)
    try:
        return json.loads(result.content), result
    except json.JSONDecodeError:
        log.error("Failed to parse LLM JSON response: %s", result.content[:500])
        return {}, result
