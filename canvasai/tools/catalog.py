from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

# Capability tiers, smallest first.  A tier includes every tool of the
# tiers before it.
TOOL_TIERS = ("basic", "advanced", "professional")


def normalize_schema(schema: dict | None) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    return s


def tier_rank(tier: str) -> int:
    try:
        return TOOL_TIERS.index(tier)
    except ValueError:
        raise ValueError(
            f"Unknown tool tier {tier!r}. Expected one of {list(TOOL_TIERS)}"
        ) from None


@dataclass
class ToolSpec:
    """A host-supplied tool: name, description and JSON-schema parameters."""

    name: str
    description: str = ""
    parameters: dict = field(default_factory=dict)
    tier: str = "basic"

    @classmethod
    def from_dict(cls, data: dict) -> ToolSpec:
        params = data.get("parameters") or data.get("input_schema") or {}
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            parameters=normalize_schema(params),
            tier=data.get("tier", "basic"),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": normalize_schema(self.parameters),
        }


class ToolCatalog:
    def __init__(self, tools: Iterable[ToolSpec] = ()):
        self._tools: dict[str, ToolSpec] = {}
        for tool in tools:
            self.register(tool)

    @classmethod
    def from_dicts(cls, items: Iterable[dict]) -> ToolCatalog:
        return cls(ToolSpec.from_dict(item) for item in items)

    def register(self, tool: ToolSpec, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        tier_rank(tool.tier)
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def require(self, name: str) -> ToolSpec:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def list(self, tier: str | None = None) -> list[ToolSpec]:
        """Tools in registration order, optionally limited to *tier*."""
        tools = list(self._tools.values())
        if not tier:
            return tools
        limit = tier_rank(tier)
        return [t for t in tools if tier_rank(t.tier) <= limit]

    def to_dicts(self, tier: str | None = None) -> list[dict]:
        return [t.to_dict() for t in self.list(tier)]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
