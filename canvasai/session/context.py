"""
Token-budgeted per-turn context assembly.

:class:`ContextAssembler` builds the three prompt components of a turn:

* the system prompt (identity, calibration, tool descriptions, custom
  instructions),
* the tool catalog, always sent whole,
* a plain-text description of the host state (viewport, selection, active
  tool and, on request, a depth-first scene outline).

The budget strategy is:

1.  ``available = max_tokens - reserve_for_response - tool_catalog_tokens``.
2.  If system prompt + state description exceed ``available``, walk the
    truncation priority in order, applying each step only while a deficit
    remains:

    * ``scene_description`` -- replace the scene outline with a placeholder;
    * ``state_description`` -- keep the first 10 lines plus a placeholder;
    * ``custom_instructions`` -- cut the custom instructions section.

Steps that have run are never undone, and a context that already fits is
returned untouched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from canvasai.host import HostState
from canvasai.llm.token_counter import estimate_tokens
from canvasai.llm.types import ProviderCapabilities
from canvasai.prompts.system import CUSTOM_INSTRUCTIONS_MARKER, build_system_prompt
from canvasai.session.calibration import CoordinateCalibrator, round_half_up as _r
from canvasai.tools.catalog import ToolCatalog, ToolSpec

SCENE_MARKER = "SCENE CONTENTS:"
SCENE_PLACEHOLDER = "[Scene graph truncated due to context limits]"
STATE_PLACEHOLDER = "[Additional state information truncated]"
STATE_KEEP_LINES = 10


class TruncationTarget(str, Enum):
    SCENE_DESCRIPTION = "scene_description"
    STATE_DESCRIPTION = "state_description"
    CUSTOM_INSTRUCTIONS = "custom_instructions"


DEFAULT_PRIORITY = (
    TruncationTarget.SCENE_DESCRIPTION,
    TruncationTarget.STATE_DESCRIPTION,
    TruncationTarget.CUSTOM_INSTRUCTIONS,
)


@dataclass
class TokenBudget:
    max_tokens: int = 100_000
    reserve_for_response: int = 4096
    truncation_priority: list[TruncationTarget] = field(
        default_factory=lambda: list(DEFAULT_PRIORITY)
    )

    def __post_init__(self) -> None:
        self.truncation_priority = [TruncationTarget(p) for p in self.truncation_priority]


@dataclass
class ContextOptions:
    include_scene_graph: bool = False
    max_nodes: int = 20
    detailed_selection: bool = False
    max_selection: int = 5
    tool_tier: str | None = None
    project_name: str | None = None
    custom_instructions: str | None = None
    token_budget: TokenBudget | None = None
    capabilities: ProviderCapabilities | None = None


@dataclass
class AIContext:
    """The per-turn prompt artifact.  Rebuilt every turn, never stored."""

    system_prompt: str
    tool_catalog: list[ToolSpec]
    state_description: str
    estimated_tokens: int
    send_tools: bool = True
    include_images: bool = True
    truncated: list[TruncationTarget] = field(default_factory=list)

    def tool_dicts(self) -> list[dict]:
        return [t.to_dict() for t in self.tool_catalog]


def truncate_context(
    system_prompt: str,
    state_description: str,
    available: int,
    priority: Iterable[TruncationTarget] = DEFAULT_PRIORITY,
) -> tuple[str, str, list[TruncationTarget]]:
    """
    Shrink *system_prompt* and *state_description* toward *available* tokens.

    Returns the new pair and the steps that were applied.
    """
    system, state = system_prompt, state_description
    applied: list[TruncationTarget] = []

    for target in priority:
        if estimate_tokens(system) + estimate_tokens(state) <= available:
            break
        target = TruncationTarget(target)

        if target is TruncationTarget.SCENE_DESCRIPTION:
            idx = state.find(SCENE_MARKER)
            if idx != -1:
                state = state[:idx] + SCENE_PLACEHOLDER
                applied.append(target)
        elif target is TruncationTarget.STATE_DESCRIPTION:
            lines = state.split("\n")
            state = "\n".join(lines[:STATE_KEEP_LINES])
            if len(lines) > STATE_KEEP_LINES:
                state += "\n" + STATE_PLACEHOLDER
            applied.append(target)
        elif target is TruncationTarget.CUSTOM_INSTRUCTIONS:
            idx = system.find(CUSTOM_INSTRUCTIONS_MARKER)
            if idx != -1:
                system = system[:idx]
                applied.append(target)

    return system, state, applied


class ContextAssembler:
    """
    Build an :class:`AIContext` from live host state.

    Parameters
    ----------
    host:
        Read-only host accessors, polled during ``build``.
    catalog:
        The host's tool catalog.
    calibrator:
        Supplies the coordinate-system section of the system prompt.
    application_name:
        Name used in the assistant's identity line.
    custom_instructions:
        Default custom instructions; ``ContextOptions.custom_instructions``
        overrides them per build.
    defaults:
        Options used when ``build`` is called without any.
    """

    def __init__(
        self,
        host: HostState,
        catalog: ToolCatalog,
        calibrator: CoordinateCalibrator | None = None,
        application_name: str = "the design editor",
        custom_instructions: str | None = None,
        defaults: ContextOptions | None = None,
    ) -> None:
        self.host = host
        self.catalog = catalog
        self.calibrator = calibrator or CoordinateCalibrator(host)
        self.application_name = application_name
        self.custom_instructions = custom_instructions
        self.defaults = defaults or ContextOptions()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, options: ContextOptions | None = None) -> AIContext:
        options = options or self.defaults
        budget = options.token_budget or TokenBudget()

        system_prompt = self.build_system_prompt(options)
        state_description = self.build_state_description(options)
        tools = self.get_tools(options.tool_tier)

        # Tools are always included, so their cost comes off the top.
        tool_tokens = estimate_tokens(json.dumps([t.to_dict() for t in tools]))
        available = budget.max_tokens - budget.reserve_for_response - tool_tokens

        applied: list[TruncationTarget] = []
        if estimate_tokens(system_prompt) + estimate_tokens(state_description) > available:
            system_prompt, state_description, applied = truncate_context(
                system_prompt, state_description, available, budget.truncation_priority
            )

        caps = options.capabilities
        return AIContext(
            system_prompt=system_prompt,
            tool_catalog=tools,
            state_description=state_description,
            estimated_tokens=(
                tool_tokens
                + estimate_tokens(system_prompt)
                + estimate_tokens(state_description)
            ),
            send_tools=caps.function_calling if caps else True,
            include_images=caps.vision if caps else True,
            truncated=applied,
        )

    def estimate_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    def preview(self, options: ContextOptions | None = None) -> dict:
        """Short summary of the context a turn would send, for display."""
        ctx = self.build(options)
        return {
            "system_prompt_preview": ctx.system_prompt[:500] + "...",
            "state_preview": ctx.state_description[:300] + "...",
            "tool_count": len(ctx.tool_catalog),
            "estimated_tokens": ctx.estimated_tokens,
        }

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def get_tools(self, tier: str | None = None) -> list[ToolSpec]:
        return self.catalog.list(tier or None)

    def build_system_prompt(self, options: ContextOptions) -> str:
        return build_system_prompt(
            tools=self.get_tools(options.tool_tier),
            calibration=self.calibrator.calibration_prompt(),
            application_name=self.application_name,
            project_name=options.project_name,
            custom_instructions=options.custom_instructions or self.custom_instructions,
        )

    def build_state_description(self, options: ContextOptions) -> str:
        parts: list[str] = []

        vp = self.host.get_viewport()
        b = vp.visible_bounds
        parts.append(f"Viewport: {_r(vp.zoom * 100)}% zoom")
        parts.append(
            f"Visible area: ({_r(b.x)}, {_r(b.y)}) to ({_r(b.right)}, {_r(b.bottom)})"
        )

        selected = self.host.get_selected_ids()
        if not selected:
            parts.append("Selection: none")
        else:
            parts.append(f"Selection: {len(selected)} element(s)")
            limit = (
                max(options.max_selection, 10)
                if options.detailed_selection
                else options.max_selection
            )
            if len(selected) > limit:
                parts.append(
                    f"  ({len(selected)} elements selected - showing first {limit})"
                )
            for node_id in selected[:limit]:
                node = self.host.get_node(node_id)
                if node is None:
                    continue
                desc = f'  - "{node.name}" ({node.type}) at ({_r(node.bounds.x)}, {_r(node.bounds.y)})'
                if options.detailed_selection:
                    w, h = _r(node.bounds.width), _r(node.bounds.height)
                    if w > 0 and h > 0:
                        desc += f" size {w}x{h}"
                    if node.fill:
                        desc += f" fill:{node.fill}"
                parts.append(desc)

        parts.append(f"Active tool: {self.host.get_active_tool() or 'none'}")

        if options.include_scene_graph:
            scene = self.build_scene_description(options.max_nodes)
            if scene:
                parts.append("")
                parts.append(SCENE_MARKER)
                parts.append(scene)

        return "\n".join(parts)

    def build_scene_description(self, max_nodes: int = 20) -> str:
        """Depth-first outline of the scene, at most *max_nodes* lines."""
        root = self.host.get_root_id()
        if root is None:
            return ""

        lines: list[str] = []

        def describe(node_id: str, depth: int) -> None:
            if len(lines) >= max_nodes:
                return
            node = self.host.get_node(node_id)
            if node is None:
                return
            nb = node.bounds
            lines.append(
                f'{"  " * depth}- {node.id[:8]}: "{node.name}" ({node.type}) '
                f"at ({_r(nb.x)},{_r(nb.y)}) size {_r(nb.width)}x{_r(nb.height)}"
            )
            for child_id in self.host.get_child_ids(node_id):
                describe(child_id, depth + 1)

        for child_id in self.host.get_child_ids(root):
            describe(child_id, 0)

        count = len(lines)
        if count >= max_nodes:
            lines.append(f"... and more elements (showing first {max_nodes})")
        return "\n".join(lines)
