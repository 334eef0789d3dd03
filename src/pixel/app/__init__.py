"""Application runtime package."""

from pixel.app.runtime import AppRuntime, SessionRuntime

__all__ = ["AppRuntime", "SessionRuntime"]
