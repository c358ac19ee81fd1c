"""Описание схем и реестра MCP-инструментов приложения."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

ToolResponse = Dict[str, Any]
ToolHandler = Callable[[Dict[str, Any]], ToolResponse]


class ToolSchema(BaseModel):
    """JSON-схема аргументов/результатов инструмента MCP."""

    type: str = "object"
    properties: Dict[str, Any] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)
    additionalProperties: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class ToolSpec(BaseModel):
    """Спецификация инструмента MCP, публикуемая в `tools/list`."""

    name: str
    title: Optional[str] = None
    description: str
    input_schema: ToolSchema
    output_schema: Optional[ToolSchema] = None

    def as_mcp_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema.as_dict(),
        }
        if self.title:
            payload["title"] = self.title
        if self.output_schema is not None:
            payload["outputSchema"] = self.output_schema.as_dict()
        return payload


TOOLS: Dict[str, ToolSpec] = {
    "echo": ToolSpec(
        name="echo",
        title="Echo Tool",
        description="Echoes back whatever the user says",
        input_schema=ToolSchema(
            properties={
                "message": {"type": "string", "description": "Message to echo back"},
            },
            required=["message"],
        ),
    ),
}

__all__ = [
    "ToolHandler",
    "ToolResponse",
    "ToolSchema",
    "ToolSpec",
    "TOOLS",
]
