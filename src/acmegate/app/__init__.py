"""Application wiring for acmegate."""

from acmegate.app.context import Container

__all__ = ["Container"]
