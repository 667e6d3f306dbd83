"""
Expression engine for conditions, calculations and {{ }} templates.

Uses simpleeval for safe expression evaluation (no eval() or exec()).
Unknown variables resolve to UNDEFINED instead of raising, so conditions
over missing data fail closed.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Callable, Iterator, Mapping

from simpleeval import DEFAULT_OPERATORS, SimpleEval

from ..core.exceptions import EvalError

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r"\{\{(.+?)\}\}", re.DOTALL)
STRING_LITERAL = re.compile(r"(\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')")


class Undefined:
    """Value of a variable that does not exist in the instance data."""

    _instance: Undefined | None = None

    def __new__(cls) -> Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __str__(self) -> str:
        return ""

    def __bool__(self) -> bool:
        return False

    def __len__(self) -> int:
        return 0

    def __iter__(self) -> Iterator[Any]:
        return iter(())

    def __contains__(self, item: Any) -> bool:
        return False

    def __hash__(self) -> int:
        return hash("undefined")

    def __eq__(self, other: object) -> bool:
        return other is self

    def __ne__(self, other: object) -> bool:
        return other is not self

    def __lt__(self, other: Any) -> bool:
        return False

    __le__ = __gt__ = __ge__ = __lt__

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        return self

    def __getitem__(self, key: Any) -> Undefined:
        return self

    def _propagate(self, *args: Any) -> Undefined:
        return self

    __add__ = __radd__ = __sub__ = __rsub__ = _propagate
    __mul__ = __rmul__ = __truediv__ = __rtruediv__ = _propagate
    __floordiv__ = __rfloordiv__ = __mod__ = __rmod__ = _propagate
    __pow__ = __rpow__ = __neg__ = __pos__ = _propagate


UNDEFINED = Undefined()


class _Scope:
    """Read-only attribute view over a mapping; missing keys are UNDEFINED."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Any]) -> None:
        self._values = values

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        return _wrap(self._values[name]) if name in self._values else UNDEFINED

    def __getitem__(self, key: Any) -> Any:
        try:
            return _wrap(self._values[key])
        except (KeyError, TypeError):
            return UNDEFINED

    def __eq__(self, other: object) -> bool:
        return self._values == _unwrap(other)

    __hash__ = None  # type: ignore[assignment]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __contains__(self, key: Any) -> bool:
        return key in self._values

    def __bool__(self) -> bool:
        return bool(self._values)

    def __repr__(self) -> str:
        return repr(self._values)


class _ListScope:
    """Read-only list view; out-of-range indexes are UNDEFINED."""

    __slots__ = ("_values",)

    def __init__(self, values: list[Any] | tuple[Any, ...]) -> None:
        self._values = values

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            return _ListScope(self._values[index])
        try:
            return _wrap(self._values[index])
        except (IndexError, TypeError):
            return UNDEFINED

    def __eq__(self, other: object) -> bool:
        return list(self._values) == _unwrap(other)

    __hash__ = None  # type: ignore[assignment]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        return (_wrap(v) for v in self._values)

    def __contains__(self, item: Any) -> bool:
        return _unwrap(item) in self._values

    def __bool__(self) -> bool:
        return bool(self._values)

    def __repr__(self) -> str:
        return repr(self._values)


def _wrap(value: Any) -> Any:
    if isinstance(value, Mapping):
        return _Scope(value)
    if isinstance(value, (list, tuple)):
        return _ListScope(value)
    return value


def _unwrap(value: Any) -> Any:
    if isinstance(value, _Scope):
        return value._values
    if isinstance(value, _ListScope):
        return [_unwrap(v) for v in value._values]
    if isinstance(value, list):
        return [_unwrap(v) for v in value]
    return value


def _plain(func: Callable[..., Any]) -> Callable[..., Any]:
    """Call a helper with unwrapped arguments."""

    def call(*args: Any) -> Any:
        return func(*(_unwrap(a) for a in args))

    return call


def _stringify(value: Any) -> str:
    """Convert value to string for interpolation."""
    value = _unwrap(value)
    if value is None or value is UNDEFINED:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


CONSTANTS: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "none": None,
    "undefined": UNDEFINED,
}


# Pure helpers only; no clock, environment or randomness access.
HELPER_FUNCTIONS: dict[str, Callable[..., Any]] = {
    # Type conversion
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "number": float,
    # String functions
    "lower": lambda s: str(s).lower(),
    "upper": lambda s: str(s).upper(),
    "trim": lambda s: str(s).strip(),
    "split": lambda s, sep=" ": str(s).split(sep),
    "join": lambda arr, sep="": sep.join(str(x) for x in arr),
    "includes": lambda s, search: search in s if isinstance(s, (list, dict)) else str(search) in str(s),
    "replace": lambda s, old, new: str(s).replace(old, new),
    "substring": lambda s, start, end=None: str(s)[start:end],
    "length": lambda x: len(x) if x is not UNDEFINED else 0,
    "startswith": lambda s, prefix: str(s).startswith(prefix),
    "endswith": lambda s, suffix: str(s).endswith(suffix),
    "matches": lambda s, pattern: re.search(pattern, str(s)) is not None,
    # Array functions
    "first": lambda arr: arr[0] if arr else None,
    "last": lambda arr: arr[-1] if arr else None,
    "sort": lambda arr: sorted(arr),
    "unique": lambda arr: list(dict.fromkeys(arr)),
    "flatten": lambda arr: [item for sublist in arr for item in sublist],
    # Math functions
    "abs": abs,
    "min": min,
    "max": max,
    "sum": sum,
    "round": round,
    "floor": math.floor,
    "ceil": math.ceil,
    # JSON functions
    "json_stringify": lambda v: json.dumps(v),
    "json_parse": lambda s: json.loads(s) if s else None,
    # Type checking
    "typeof": lambda v: "undefined" if v is UNDEFINED else type(v).__name__,
    "is_defined": lambda v: v is not UNDEFINED,
    "is_empty": lambda v: v is None or v is UNDEFINED or v == "" or (isinstance(v, (list, dict)) and len(v) == 0),
    "is_none": lambda v: v is None,
    # Object functions
    "keys": lambda d: list(d.keys()) if isinstance(d, dict) else [],
    "values": lambda d: list(d.values()) if isinstance(d, dict) else [],
    "get": lambda d, key, default=None: d.get(key, default) if isinstance(d, dict) else default,
}


class _Names:
    """Name resolver handed to simpleeval."""

    def __init__(self, data: Mapping[str, Any]) -> None:
        self._data = data

    def __getitem__(self, name: str) -> Any:
        if name == "data":
            return _Scope(self._data)
        if name in self._data:
            return _wrap(self._data[name])
        if name in CONSTANTS:
            return CONSTANTS[name]
        if name in HELPER_FUNCTIONS:
            # Let simpleeval fall back to the function table
            raise KeyError(name)
        return UNDEFINED


class ExpressionEngine:
    """
    Safe, deterministic evaluator for condition strings and templates.

    Expressions reference instance data either as ``data.foo.bar`` or as a
    bare ``foo.bar``. JavaScript-style operators (``&&``, ``||``, ``!``,
    ``===``, ``!==``) are accepted alongside Python's.
    """

    def __init__(self) -> None:
        self._operators = DEFAULT_OPERATORS.copy()
        self._functions = {name: _plain(fn) for name, fn in HELPER_FUNCTIONS.items()}

    def evaluate(self, expression: str, data: Mapping[str, Any]) -> Any:
        """
        Evaluate an expression or template against instance data.

        A string containing ``{{ }}`` is treated as a template: a single
        embedded expression yields its typed value, mixed content yields a
        string. Missing variables produce UNDEFINED.

        Raises:
            EvalError: If the expression is syntactically invalid or its
                evaluation raises.
        """
        if "{{" in expression:
            return self._resolve_string(expression, data, keep_undefined=True)
        return self._evaluate(expression, data)

    def evaluate_bool(self, expression: str, data: Mapping[str, Any]) -> bool:
        """Evaluate an expression in a boolean context."""
        return bool(self.evaluate(expression, data))

    def render(self, template: str, data: Mapping[str, Any]) -> str:
        """Substitute every {{ }} expression in a template with its string value."""
        return TEMPLATE_PATTERN.sub(
            lambda match: _stringify(self._evaluate(match.group(1).strip(), data)),
            template,
        )

    def resolve(self, value: Any, data: Mapping[str, Any]) -> Any:
        """
        Resolve all {{ }} expressions in a value.

        Handles strings, objects, and arrays recursively. UNDEFINED results
        become None so the resolved value stays JSON-serializable.
        """
        if isinstance(value, str):
            return self._resolve_string(value, data, keep_undefined=False)

        if isinstance(value, list):
            return [self.resolve(item, data) for item in value]

        if isinstance(value, dict):
            return {key: self.resolve(val, data) for key, val in value.items()}

        return value

    def _resolve_string(self, string: str, data: Mapping[str, Any], keep_undefined: bool) -> Any:
        trimmed = string.strip()

        # Entire string is a single expression: return the typed value
        if trimmed.startswith("{{") and trimmed.endswith("}}"):
            inner = trimmed[2:-2].strip()
            if "{{" not in inner and "}}" not in inner:
                result = self._evaluate(inner, data)
                if result is UNDEFINED and not keep_undefined:
                    return None
                return result

        return self.render(string, data)

    def _evaluate(self, expression: str, data: Mapping[str, Any]) -> Any:
        """Evaluate a single expression safely using simpleeval."""
        if not expression.strip():
            raise EvalError("Empty expression", expression)

        transformed = self._transform_expression(expression)
        evaluator = SimpleEval(
            operators=self._operators,
            functions=self._functions,
            names=_Names(data),
        )
        try:
            return _unwrap(evaluator.eval(transformed))
        except SyntaxError as e:
            raise EvalError(f"Invalid expression syntax: {e.msg}", expression) from e
        except Exception as e:
            logger.debug("Expression evaluation failed: %s (expression: %s)", e, expression)
            raise EvalError(f"Expression evaluation failed: {e}", expression) from e

    def _transform_expression(self, expression: str) -> str:
        """Translate JavaScript-style operators outside string literals."""
        parts = STRING_LITERAL.split(expression)
        for i in range(0, len(parts), 2):
            part = parts[i]
            part = part.replace("===", "==").replace("!==", "!=")
            part = part.replace("&&", " and ").replace("||", " or ")
            part = re.sub(r"!(?!=)", " not ", part)
            parts[i] = part
        return "".join(parts).strip()


# Singleton instance
expression_engine = ExpressionEngine()
