"""Flow control nodes."""

from .condition import ConditionNode
from .end import EndNode
from .loop import LoopNode
from .parallel import ParallelNode
from .switch import SwitchNode
from .timer import TimerNode

__all__ = [
    "ConditionNode",
    "EndNode",
    "LoopNode",
    "ParallelNode",
    "SwitchNode",
    "TimerNode",
]
