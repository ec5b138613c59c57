"""
基于执行上下文的 ``{{path}}`` 占位符解析
"""
import json
import re
from typing import Any, List, Mapping


PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


class _Missing:
    def __repr__(self):
        return "MISSING"

    def __bool__(self):
        return False


MISSING = _Missing()


def get_path(data: Any, path: str) -> Any:
    """按点号路径取值，列表段可以是整数下标；不存在时返回 MISSING"""
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            index = int(part)
            if not -len(current) <= index < len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def render(template: str, context: Mapping[str, Any]) -> Any:
    # 单独的占位符保留被引用值的类型
    whole = PLACEHOLDER_RE.fullmatch(template)
    if whole:
        value = get_path(context, whole.group(1))
        return template if value is MISSING else value

    def substitute(match):
        value = get_path(context, match.group(1))
        if value is MISSING:
            return match.group(0)
        return _stringify(value)

    return PLACEHOLDER_RE.sub(substitute, template)


def resolve_params(params: Any, context: Mapping[str, Any]) -> Any:
    """返回 ``params`` 的副本，其中每个占位符都已按 ``context`` 替换"""
    if isinstance(params, str):
        return render(params, context)
    if isinstance(params, Mapping):
        return {key: resolve_params(value, context) for key, value in params.items()}
    if isinstance(params, (list, tuple)):
        return [resolve_params(item, context) for item in params]
    return params


def extract_variables(template: str) -> List[str]:
    seen: List[str] = []
    for match in PLACEHOLDER_RE.finditer(template):
        path = match.group(1)
        if path not in seen:
            seen.append(path)
    return seen
