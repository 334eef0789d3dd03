"""Action registry and built-in actions."""

from pixel.actions.builtin import register_builtin_actions
from pixel.actions.registry import DELEGATED, ActionRegistry, ActionSpec

__all__ = ["DELEGATED", "ActionRegistry", "ActionSpec", "register_builtin_actions"]
