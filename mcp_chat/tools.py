from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Subset of OpenAPI 3.0 schema keys that Gemini function declarations accept.
GEMINI_SCHEMA_KEYS = {
    "type", "description", "enum", "items",
    "properties", "required", "nullable",
}


class ToolDefinition(BaseModel):
    """A tool from the catalog, as reported by the tool executor.

    ``id`` is what the model calls the tool by; ``server_id`` routes the
    invocation back to the server that owns it.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: str = ""
    parameters: dict = Field(default_factory=dict)
    server_id: str = ""
    server_name: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name"):
            data = {**data, "name": data.get("id", "")}
        return data

    def schema(self) -> dict:
        """Return the parameters as a JSON object schema."""
        return {
            "type": "object",
            "properties": self.parameters.get("properties") or {},
            "required": self.parameters.get("required") or [],
        }

    def display_description(self) -> str:
        return self.description or f"{self.name} from {self.server_name}"


@dataclass
class ToolCallOutcome:
    """What the executor reports for one invocation. Failures are data, not exceptions."""

    success: bool
    result: Any = None
    message: Optional[str] = None


@runtime_checkable
class ToolExecutor(Protocol):
    """External collaborator that knows the tool catalog and runs tools."""

    async def list_active_tools(self) -> list[ToolDefinition]:
        ...

    async def call_tool(
        self, server_id: str, tool_id: str, parameters: dict
    ) -> ToolCallOutcome:
        ...


def find_tool(catalog: list[ToolDefinition], tool_id: str) -> Optional[ToolDefinition]:
    for tool in catalog:
        if tool.id == tool_id:
            return tool
    return None


def format_tools_for_openai(catalog: list[ToolDefinition]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.id,
                "description": tool.display_description(),
                "parameters": tool.schema(),
            },
        }
        for tool in catalog
    ]


def format_tools_for_anthropic(catalog: list[ToolDefinition]) -> list[dict]:
    return [
        {
            "name": tool.id,
            "description": tool.display_description(),
            "input_schema": tool.schema(),
        }
        for tool in catalog
    ]


def format_tools_for_gemini(catalog: list[ToolDefinition]) -> list[dict]:
    if not catalog:
        return []
    declarations = []
    for tool in catalog:
        declaration = {
            "name": tool.id,
            "description": tool.display_description(),
        }
        schema = clean_gemini_schema(tool.schema())
        if schema.get("properties"):
            declaration["parameters"] = schema
        declarations.append(declaration)
    return [{"functionDeclarations": declarations}]


def clean_gemini_schema(schema: dict, is_properties: bool = False) -> dict:
    """Remove JSON Schema fields that Gemini doesn't support.

    MCP servers publish schemas with fields like additionalProperties, anyOf,
    $defs, title and default that the Gemini API rejects. Only the keys in
    GEMINI_SCHEMA_KEYS survive; ``anyOf`` with a single non-null branch
    becomes that branch plus ``nullable``.
    """
    if not isinstance(schema, dict):
        return schema

    cleaned = {}
    for key, value in schema.items():
        # Inside "properties", keys are user-defined property names; keep all
        if is_properties:
            cleaned[key] = clean_gemini_schema(value) if isinstance(value, dict) else value
            continue

        # anyOf: [{"type": "X"}, {"type": "null"}] → type X + nullable
        if key == "anyOf":
            non_null = [s for s in value if s.get("type") != "null"]
            has_null = any(s.get("type") == "null" for s in value)
            if len(non_null) == 1:
                resolved = clean_gemini_schema(non_null[0])
                if has_null:
                    resolved["nullable"] = True
                cleaned.update(resolved)
            continue

        if key not in GEMINI_SCHEMA_KEYS:
            continue

        if key == "properties" and isinstance(value, dict):
            cleaned[key] = clean_gemini_schema(value, is_properties=True)
        elif isinstance(value, dict):
            cleaned[key] = clean_gemini_schema(value)
        elif isinstance(value, list):
            cleaned[key] = [
                clean_gemini_schema(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            cleaned[key] = value

    return cleaned
