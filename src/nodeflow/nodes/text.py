"""Text node — renders a template string against the node's inputs."""

from __future__ import annotations
from typing import Any

from pydantic import BaseModel

from nodeflow.nodes.base import NodeError, NodeOutput, NodeType
from nodeflow.nodes.templating import TemplateRenderError, referenced_variables, render


class TextConfig(BaseModel):
    content: str


class TextNode(NodeType):
    type_name = "text"
    label = "Text"
    required_fields = ("content",)
    config_model = TextConfig

    async def execute(self, config: TextConfig, inputs: dict[str, Any], context) -> NodeOutput:
        try:
            text = render(config.content, inputs, "content")
        except TemplateRenderError as e:
            raise NodeError(str(e)) from e

        return NodeOutput(
            output={"text": text, "original_template": config.content},
            metadata={
                "template_length": len(config.content),
                "output_length": len(text),
                "variables_used": referenced_variables(config.content),
            },
        )
