"""
声明式条件求值

条件将上下文中的一个值与一个字面量比较，支持两种形式：

* 表达式字符串，如 ``payload.amount > 100`` 或
  ``payload.client.type == "business"``；
* 节点编辑器生成的 ``field`` / ``operator`` / ``value`` 三元组，如
  ``{"field": "invoice.amount", "operator": "greater_than", "value": 100}``。

不支持算术、布尔组合和函数调用。路径缺失或值无法比较时结果为 ``False``。
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from ..exceptions import DefinitionValidationError
from ..models.workflow import ConditionConfig
from .variables import MISSING, get_path


logger = logging.getLogger(__name__)


def _is_empty(value: Any) -> bool:
    if value is None or value is MISSING:
        return True
    if isinstance(value, (str, list, dict, tuple, set)):
        return len(value) == 0
    return False


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, str):
        return str(right) in left
    if isinstance(left, (list, tuple, set)):
        return right in left
    if isinstance(left, dict):
        return right in left
    return False


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda a, b: a == b,
    "not_equals": lambda a, b: a != b,
    "greater_than": lambda a, b: a > b,
    "less_than": lambda a, b: a < b,
    "greater_or_equal": lambda a, b: a >= b,
    "less_or_equal": lambda a, b: a <= b,
    "contains": _contains,
    "not_contains": lambda a, b: not _contains(a, b),
    "starts_with": lambda a, b: isinstance(a, str) and a.startswith(str(b)),
    "ends_with": lambda a, b: isinstance(a, str) and a.endswith(str(b)),
    "is_empty": lambda a, _: _is_empty(a),
    "is_not_empty": lambda a, _: not _is_empty(a),
}

UNARY_OPERATORS = {"is_empty", "is_not_empty"}

SYMBOLS = {
    "==": "equals",
    "!=": "not_equals",
    ">=": "greater_or_equal",
    "<=": "less_or_equal",
    ">": "greater_than",
    "<": "less_than",
    "contains": "contains",
    "not_contains": "not_contains",
    "startswith": "starts_with",
    "endswith": "ends_with",
}

_PATH = r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*"
_BINARY_RE = re.compile(
    rf"^\s*(?P<path>{_PATH})\s*"
    r"(?P<op>==|!=|>=|<=|>|<|\bnot_contains\b|\bcontains\b|\bstartswith\b|\bendswith\b)"
    r"\s*(?P<literal>.+?)\s*$"
)
_UNARY_RE = re.compile(rf"^\s*(?P<path>{_PATH})\s+is\s+(?P<neg>not\s+)?empty\s*$")
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?([eE][-+]?\d+)?$")


@dataclass(frozen=True)
class Comparison:
    """编译后的条件"""
    path: str
    operator: str
    value: Any = None

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        actual = get_path(context, self.path)
        if self.operator in UNARY_OPERATORS:
            return OPERATORS[self.operator](actual, None)
        if actual is MISSING:
            return False
        try:
            return bool(OPERATORS[self.operator](actual, self.value))
        except TypeError:
            logger.debug(
                "Incomparable values for %s %s %r: %r",
                self.path, self.operator, self.value, actual,
            )
            return False


def parse_literal(text: str) -> Any:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "none"):
        return None
    if _NUMBER_RE.match(text):
        return float(text) if any(c in text for c in ".eE") else int(text)
    raise DefinitionValidationError(f"Invalid literal in condition: {text!r}")


def compile_expression(expression: str) -> Comparison:
    """解析 ``<path> <op> <literal>`` 或 ``<path> is [not] empty``"""
    if not isinstance(expression, str) or not expression.strip():
        raise DefinitionValidationError("Condition expression must be a non-empty string")

    unary = _UNARY_RE.match(expression)
    if unary:
        operator = "is_not_empty" if unary.group("neg") else "is_empty"
        return Comparison(path=unary.group("path"), operator=operator)

    match = _BINARY_RE.match(expression)
    if not match:
        raise DefinitionValidationError(f"Unsupported condition expression: {expression!r}")
    return Comparison(
        path=match.group("path"),
        operator=SYMBOLS[match.group("op")],
        value=parse_literal(match.group("literal")),
    )


def compile_condition(config: ConditionConfig) -> Comparison:
    if config.expression is not None:
        return compile_expression(config.expression)
    if not config.field or not config.operator:
        raise DefinitionValidationError(
            "Condition needs either 'expression' or both 'field' and 'operator'"
        )
    if config.operator not in OPERATORS:
        raise DefinitionValidationError(
            f"Unknown condition operator '{config.operator}'",
            [f"operator must be one of {sorted(OPERATORS)}"],
        )
    return Comparison(path=config.field, operator=config.operator, value=config.value)


class ConditionEvaluator:
    """按执行上下文求值条件配置，并缓存编译结果"""

    def __init__(self):
        self._cache: Dict[str, Comparison] = {}

    def evaluate(self, config: ConditionConfig, context: Mapping[str, Any]) -> bool:
        key = json.dumps(
            [config.expression, config.field, config.operator, config.value],
            sort_keys=True, default=str,
        )
        comparison = self._cache.get(key)
        if comparison is None:
            comparison = compile_condition(config)
            self._cache[key] = comparison
        return comparison.evaluate(context)
