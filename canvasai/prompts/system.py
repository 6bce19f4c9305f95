"""System prompt builder."""

from __future__ import annotations

from canvasai.tools.catalog import ToolSpec

# Truncation cuts the prompt at this marker, so it must stay the last section.
CUSTOM_INSTRUCTIONS_MARKER = "\n\nCUSTOM INSTRUCTIONS:"


def describe_tools(tools: list[ToolSpec]) -> str:
    """One line per tool plus an indented parameter summary."""
    if not tools:
        return "(no tools available)"
    lines: list[str] = []
    for t in tools:
        lines.append(f"- {t.name}: {t.description}" if t.description else f"- {t.name}")
        props = t.parameters.get("properties") or {}
        if props:
            required = set(t.parameters.get("required") or [])
            params = []
            for pname, schema in props.items():
                ptype = schema.get("type", "any") if isinstance(schema, dict) else "any"
                flag = ", required" if pname in required else ""
                params.append(f"{pname} ({ptype}{flag})")
            lines.append("  Parameters: " + ", ".join(params))
    return "\n".join(lines)


def build_system_prompt(
    tools: list[ToolSpec] | None = None,
    calibration: str = "",
    application_name: str = "the design editor",
    project_name: str | None = None,
    custom_instructions: str | None = None,
) -> str:
    """
    Build the per-turn system prompt.

    Sections: identity, optional project, coordinate calibration,
    capabilities, tool list, guidelines, and (last) custom instructions.
    """
    sections: list[str] = [
        f"You are an AI design assistant for {application_name}, "
        "a vector graphics editor."
    ]
    if project_name:
        sections.append(f"PROJECT: {project_name}")
    if calibration:
        sections.append(calibration)
    sections.append(CAPABILITIES_SECTION)
    sections.append("AVAILABLE TOOLS:\n" + describe_tools(tools or []))
    sections.append(GUIDELINES_SECTION)

    prompt = "\n\n".join(sections)
    if custom_instructions:
        prompt += f"{CUSTOM_INSTRUCTIONS_MARKER}\n{custom_instructions}"
    return prompt


CAPABILITIES_SECTION = """CAPABILITIES:
- You can CREATE shapes (rectangles, ellipses, lines, text, frames)
- You can SELECT, MOVE, RESIZE, ROTATE, and DELETE elements
- You can change COLORS, OPACITY, and other style properties
- You can GROUP and UNGROUP elements
- You can control the VIEWPORT (pan, zoom)
- You can UNDO and REDO changes"""

GUIDELINES_SECTION = """GUIDELINES:
1. Be precise with coordinates; the red crosshair marks (0,0)
2. When creating elements, place them in visible areas
3. Use descriptive names for created elements
4. Confirm your actions by describing what you did
5. If asked to modify something, first identify it by name or position
6. For colors, use hex codes (#ff0000) or color names (red, blue, etc.)

When you receive a screenshot, analyze it to understand:
- What elements exist and where they are positioned
- The current selection state
- The overall layout and composition

Respond naturally and execute design requests using the provided tools."""
