"""Script node - run a Python snippet in a restricted environment."""

from __future__ import annotations

import asyncio
import concurrent.futures
import copy
import json
import logging
import math
import re
from typing import Any, TYPE_CHECKING

from ..base import BaseNode, NodeTypeDescription
from ..configs import ScriptConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node

logger = logging.getLogger(__name__)

SAFE_BUILTINS: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "list": list,
    "dict": dict,
    "tuple": tuple,
    "set": set,
    "range": range,
    "enumerate": enumerate,
    "zip": zip,
    "map": map,
    "filter": filter,
    "sorted": sorted,
    "reversed": reversed,
    "sum": sum,
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
    "any": any,
    "all": all,
    "isinstance": isinstance,
    "None": None,
    "True": True,
    "False": False,
}


class ScriptNode(BaseNode):
    """
    Script node - execute custom Python code.

    The code runs as the body of a function with ``data`` (a copy of the
    instance data) in scope. A returned dict is merged into the instance
    data; returning None leaves it unchanged.
    """

    node_description = NodeTypeDescription(
        name="script",
        display_name="Script",
        description="Execute custom Python code",
        icon="fa:code",
        group=["data"],
    )
    config_model = ScriptConfig

    @property
    def type(self) -> str:
        return "script"

    @property
    def description(self) -> str:
        return "Execute custom Python code"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        config: ScriptConfig = node.config  # type: ignore[assignment]
        timeout = config.timeout or ctx.services.script_timeout

        def log(*args: Any) -> None:
            logger.info("[Script %s] %s", node.id, " ".join(str(a) for a in args))

        restricted_globals: dict[str, Any] = {
            "__builtins__": {**SAFE_BUILTINS, "print": log},
            "data": copy.deepcopy(ctx.data),
            "log": log,
            "json": json,
            "math": math,
            "re": re,
        }

        # Wrap code in a function so "return" works at top level
        indented_code = "\n".join(
            "    " + line if line.strip() else "" for line in config.code.split("\n")
        )
        wrapped_code = f"def __user_code__():\n{indented_code}\n    pass\n\n__result__ = __user_code__()\n"

        def execute_code() -> Any:
            exec_locals: dict[str, Any] = {}
            exec(wrapped_code, restricted_globals, exec_locals)
            return exec_locals.get("__result__")

        loop = asyncio.get_running_loop()
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        try:
            future = loop.run_in_executor(executor, execute_code)
            result = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise RuntimeError(f"Script execution timed out ({timeout} second limit)")
        finally:
            # A timed-out thread cannot be interrupted; do not wait for it
            executor.shutdown(wait=False)

        if result is None:
            return self.advance()
        if not isinstance(result, dict):
            raise TypeError(f"Script must return a dict, got {type(result).__name__}")

        ctx.data.update(result)
        return self.advance()
