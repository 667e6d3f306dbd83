"""Data nodes."""

from .script import ScriptNode
from .variable import CalculateNode, VariableNode

__all__ = ["CalculateNode", "ScriptNode", "VariableNode"]
