"""Trigger nodes."""

from .start import StartNode

__all__ = ["StartNode"]
