"""解析模块：从 JSON 读取自动化脚本"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .models import ACTION_TYPES, ActionStep, AutomationScript, Result, fail, ok


def parse_script_from_file(file_path: Union[str, Path]) -> Result[AutomationScript]:
    try:
        content = Path(file_path).read_text(encoding="utf-8")
    except OSError as e:
        return fail(f"Failed to read automation script file: {e}")
    return parse_script_from_string(content)


def parse_script_from_string(content: str) -> Result[AutomationScript]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        return fail(f"Failed to parse JSON: {e}")
    return parse_script(data)


def parse_script(data: Any) -> Result[AutomationScript]:
    """校验必填字段并规范化为 AutomationScript"""
    if not isinstance(data, dict):
        return fail("Script must be a JSON object")

    name = data.get("name")
    if not name or not isinstance(name, str):
        return fail("Script name is required and must be a string")

    raw_steps = data.get("steps")
    if not isinstance(raw_steps, list):
        return fail("Script steps are required and must be an array")
    if not raw_steps:
        return fail("Script must have at least one step")

    steps = []
    for number, raw in enumerate(raw_steps, start=1):
        parsed = _parse_step(raw, number)
        if not parsed.success:
            return parsed
        steps.append(parsed.data)

    return ok(AutomationScript(
        name=name,
        steps=tuple(steps),
        description=data.get("description") or None,
        base_url=data.get("baseUrl") or data.get("base_url") or None,
    ))


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def _parse_step(raw: Any, number: int) -> Result[ActionStep]:
    if not isinstance(raw, dict):
        return fail(f"Step {number}: must be an object")

    action = raw.get("type")
    if not action or not isinstance(action, str):
        return fail(f"Step {number}: type is required and must be a string")
    if action not in ACTION_TYPES:
        return fail(f"Step {number}: invalid type '{action}'. Valid types: {', '.join(ACTION_TYPES)}")

    problem = _missing_requirement(raw, action)
    if problem:
        return fail(f"Step {number}: {problem}")

    timeout = raw.get("timeout")
    if timeout is not None and not _is_positive_number(timeout):
        return fail(f"Step {number}: timeout must be a positive number")

    return ok(ActionStep(
        type=action,
        selector=raw.get("selector") or None,
        value=raw.get("value"),
        url=raw.get("url") or None,
        timeout=int(timeout) if timeout is not None else None,
        description=raw.get("description") or None,
        optional=bool(raw.get("optional", False)),
        frame=raw.get("frame") or None,
        prompt_text=raw.get("promptText") or raw.get("prompt_text") or None,
    ))


def _missing_requirement(raw: Dict[str, Any], action: str) -> Optional[str]:
    """返回该类型缺失的必填字段说明，满足时返回 None"""
    def has_text(key: str) -> bool:
        return isinstance(raw.get(key), str) and bool(raw.get(key))

    if action == "navigate" and not has_text("url"):
        return "navigate action requires 'url' field"
    if action in ("click", "scroll") and not has_text("selector"):
        return f"{action} action requires 'selector' field"
    if action in ("type", "select"):
        if not has_text("selector"):
            return f"{action} action requires 'selector' field"
        if raw.get("value") is None:
            return f"{action} action requires 'value' field"
    if action == "wait" and not has_text("selector") and not _is_positive_number(raw.get("timeout")):
        return "wait action requires positive 'timeout' field or a 'selector'"
    return None
