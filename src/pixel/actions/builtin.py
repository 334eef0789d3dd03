"""Built-in actions available to every session."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from pixel.actions.registry import ActionRegistry

COLOR_NAMES: dict[str, str] = {
    "red": "#FF0000",
    "blue": "#0000FF",
    "green": "#00FF00",
    "yellow": "#FFFF00",
    "orange": "#FFA500",
    "purple": "#800080",
    "pink": "#FFC0CB",
    "cyan": "#00FFFF",
    "black": "#000000",
    "white": "#FFFFFF",
    "gray": "#808080",
    "grey": "#808080",
    "dark": "#1a1a1a",
    "light": "#f5f5f5",
}


class ChangeBackgroundColorInput(BaseModel):
    """Change the UI background colour to the one the user is asking for right now."""

    color: str = Field(
        ...,
        min_length=1,
        description=(
            "The colour from the user's latest message, e.g. 'blue' for 'make it blue'. "
            "Never reuse a colour from earlier messages."
        ),
    )


def color_to_hex(color: str) -> str:
    """Map a colour name to hex; hex codes and unknown names pass through."""
    value = color.strip()
    if value.startswith("#"):
        return value
    return COLOR_NAMES.get(value.lower(), value)


def _prepare_background_color(params: ChangeBackgroundColorInput) -> dict[str, Any]:
    return {"color": color_to_hex(params.color)}


def register_builtin_actions(registry: ActionRegistry, *, timeout_seconds: float | None = None) -> None:
    """Register built-in actions into the registry."""

    registry.delegated(
        name="changeBackgroundColor",
        description="Changes the background colour of the user interface to the colour the user currently asks for.",
        params=ChangeBackgroundColorInput,
        prepare=_prepare_background_color,
        timeout_seconds=timeout_seconds,
    )
