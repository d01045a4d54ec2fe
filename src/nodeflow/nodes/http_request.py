"""HTTP request node — calls an external endpoint with templated url, headers and body."""

from __future__ import annotations
import logging
import time
from typing import Any

import httpx
from pydantic import BaseModel, field_validator

from nodeflow.nodes.base import NodeError, NodeOutput, NodeType
from nodeflow.nodes.templating import TemplateRenderError, render, render_value

logger = logging.getLogger("nodeflow.nodes.http")

HTTP_METHODS = ("get", "post", "put", "patch", "delete")


class HttpRequestConfig(BaseModel):
    url: str
    method: str
    headers: dict[str, str] = {}
    body: str | dict | list | None = None
    timeout: float | None = None

    @field_validator("method", mode="before")
    @classmethod
    def check_method(cls, value: Any) -> str:
        method = str(value).lower()
        if method not in HTTP_METHODS:
            raise ValueError(f"Invalid HTTP method: {value}")
        return method


class HttpRequestNode(NodeType):
    type_name = "http_request"
    label = "HTTP request"
    required_fields = ("url", "method")
    config_model = HttpRequestConfig

    async def execute(self, config: HttpRequestConfig, inputs: dict[str, Any], context) -> NodeOutput:
        try:
            url = render(config.url, inputs, "url")
            headers = {
                name: render(value, inputs, f"headers.{name}")
                for name, value in config.headers.items()
            }
            request_kwargs: dict[str, Any] = {}
            if isinstance(config.body, str):
                request_kwargs["content"] = render(config.body, inputs, "body")
            elif config.body is not None:
                request_kwargs["json"] = render_value(config.body, inputs, "body")
        except TemplateRenderError as e:
            raise NodeError(str(e)) from e

        timeout = config.timeout or context.settings.http_timeout
        method = config.method.upper()
        logger.info(f"Node {context.node_id}: {method} {url}")

        start = time.monotonic()
        try:
            resp = await context.client.request(
                method, url, headers=headers, timeout=timeout, **request_kwargs
            )
        except httpx.HTTPError as e:
            raise NodeError(f"HTTP request to {url} failed: {e}") from e
        elapsed = int((time.monotonic() - start) * 1000)

        return NodeOutput(
            output={
                "status": resp.status_code,
                "headers": dict(resp.headers),
                "body": _decode_body(resp),
            },
            metadata={
                "url": url,
                "method": method,
                "duration_ms": elapsed,
                "status_code": resp.status_code,
            },
        )


def _decode_body(resp: httpx.Response) -> Any:
    if "json" in resp.headers.get("content-type", ""):
        try:
            return resp.json()
        except ValueError:
            return resp.text
    return resp.text
