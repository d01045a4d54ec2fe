"""LLM node — sends templated prompts to an OpenAI-compatible chat completion API."""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, field_validator

from nodeflow.nodes.base import NodeError, NodeOutput, NodeType
from nodeflow.nodes.templating import TemplateRenderError, render

logger = logging.getLogger("nodeflow.nodes.llm")

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


@dataclass(frozen=True)
class Provider:
    name: str
    display_name: str
    url_setting: str
    # Extra body fields the provider expects
    extra_body: tuple[tuple[str, Any], ...] = ()
    send_app_headers: bool = False

    def url(self, settings) -> str:
        return getattr(settings, self.url_setting)

    def headers(self, api_key: str, settings) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        if self.send_app_headers:
            headers["HTTP-Referer"] = settings.app_referer
            headers["X-Title"] = settings.app_title
        return headers


PROVIDERS: dict[str, Provider] = {
    "openrouter": Provider("openrouter", "OpenRouter", "openrouter_url", send_app_headers=True),
    "xai": Provider("xai", "xAI", "xai_url", extra_body=(("stream", False),)),
}


class LlmConfig(BaseModel):
    model: str
    user_prompt: str
    provider: str = "openrouter"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = 0.7
    max_tokens: int = 1000
    api_key: str | None = None

    @field_validator("provider")
    @classmethod
    def check_provider(cls, value: str) -> str:
        if value not in PROVIDERS:
            raise ValueError(f"Unsupported provider: {value}")
        return value


class LlmNode(NodeType):
    type_name = "llm"
    label = "LLM"
    required_fields = ("model", "user_prompt")
    config_model = LlmConfig

    async def execute(self, config: LlmConfig, inputs: dict[str, Any], context) -> NodeOutput:
        provider = PROVIDERS[config.provider]
        settings = context.settings

        try:
            system_prompt = render(config.system_prompt, inputs, "system_prompt")
            user_prompt = render(config.user_prompt, inputs, "user_prompt")
            api_key = render(config.api_key, inputs, "api_key") if config.api_key else None
        except TemplateRenderError as e:
            raise NodeError(str(e)) from e

        api_key = api_key or settings.provider_api_key(provider.name)
        if not api_key:
            raise NodeError(f"No API key found for provider {provider.name}")

        body = {
            "model": config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            **dict(provider.extra_body),
        }

        logger.info(f"Calling {provider.display_name} with model: {config.model}")
        start = time.monotonic()
        try:
            resp = await context.client.post(
                provider.url(settings),
                json=body,
                headers=provider.headers(api_key, settings),
                timeout=settings.llm_timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"{provider.display_name} API request failed: {e}")
            raise NodeError(f"{provider.display_name} API request failed: {e}") from e

        if not resp.is_success:
            logger.error(f"{provider.display_name} API returned status {resp.status_code}: {resp.text}")
            raise NodeError(
                f"{provider.display_name} API request failed with status {resp.status_code}: {resp.text}"
            )

        text, tokens = _parse_completion(resp)
        if not text:
            raise NodeError(f"No response text in {provider.display_name} response")
        elapsed = int((time.monotonic() - start) * 1000)

        return NodeOutput(
            output={"text": text, "model": config.model, "provider": provider.name},
            metadata={
                "duration_ms": elapsed,
                "tokens_used": tokens,
                "model": config.model,
                "provider": provider.name,
                "temperature": config.temperature,
                "max_tokens": config.max_tokens,
            },
        )


def _parse_completion(resp: httpx.Response) -> tuple[str | None, int]:
    try:
        data = resp.json()
    except ValueError:
        return None, 0
    if not isinstance(data, dict):
        return None, 0
    choices = data.get("choices") or [{}]
    text = (choices[0].get("message") or {}).get("content")
    tokens = (data.get("usage") or {}).get("total_tokens") or 0
    return text, tokens
