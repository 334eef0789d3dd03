"""Pixel - a two-stage voice agent that delegates UI actions to its peer."""

from .actions import ActionRegistry, ActionSpec
from .app import AppRuntime
from .pipeline import SessionOrchestrator
from .remote import RemoteCorrelator

__version__ = "0.1.0"

__all__ = ["ActionRegistry", "ActionSpec", "AppRuntime", "RemoteCorrelator", "SessionOrchestrator"]
