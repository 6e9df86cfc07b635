"""校验模块：脚本结构校验，给出错误与建议"""

from typing import List, Sequence
from urllib.parse import urlparse

from .models import ActionStep, AutomationScript, ValidationError, ValidationResult


def validate_script(script: AutomationScript) -> ValidationResult:
    """校验整个脚本，errors 非空表示不能执行"""
    result = ValidationResult()

    if not (script.name or "").strip():
        result.errors.append(ValidationError("name", "Script name cannot be empty"))
    if script.base_url and not is_valid_url(script.base_url):
        result.errors.append(ValidationError("baseUrl", "Base URL must be a valid URL"))

    if not script.steps:
        result.errors.append(ValidationError("steps", "Script must have at least one step"))
        return result

    _check_patterns(script.steps, result.warnings)
    for number, step in enumerate(script.steps, start=1):
        _validate_step(step, number, result)

    return result


def _check_patterns(steps: Sequence[ActionStep], warnings: List[str]) -> None:
    for index in range(len(steps) - 1):
        current, following = steps[index], steps[index + 1]
        if current.type == "navigate" and following.type != "wait":
            warnings.append(f"Step {index + 1}: Consider adding a wait after navigation for better reliability")
        if current.type == "click" and following.type == "click":
            warnings.append(f"Step {index + 1}: Multiple consecutive clicks without wait may cause issues")

    if len(steps) > 10 and not any(step.type == "screenshot" for step in steps):
        warnings.append("Long script without screenshots - consider adding screenshots for debugging")


def _validate_step(step: ActionStep, number: int, result: ValidationResult) -> None:
    if step.selector is not None and not is_valid_selector(step.selector):
        result.errors.append(ValidationError("selector", "Invalid CSS selector format", number))
    if step.url and not is_valid_url(step.url):
        result.errors.append(ValidationError("url", "Invalid URL format", number))

    if step.timeout is not None:
        if step.timeout < 0:
            result.errors.append(ValidationError("timeout", "Timeout cannot be negative", number))
        elif step.timeout > 60000:
            result.warnings.append(f"Step {number}: Timeout over 60 seconds may be too long")

    # 按类型的建议
    if step.type == "type" and isinstance(step.value, str) and len(step.value) > 1000:
        result.warnings.append(f"Step {number}: Very long text input ({len(step.value)} chars)")
    elif step.type == "wait" and step.timeout and step.timeout < 100:
        result.warnings.append(f"Step {number}: Very short wait time ({step.timeout}ms)")
    elif step.type == "navigate" and step.url and step.url.startswith("file://"):
        result.warnings.append(f"Step {number}: Local file URLs may not work in all browsers")
    elif step.type == "scroll" and isinstance(step.value, (int, float)) and abs(step.value) > 10000:
        result.warnings.append(f"Step {number}: Large scroll distance ({step.value}px)")


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        # 例如 "http://[oops"：非法 IPv6 主机
        return False
    if not parsed.scheme:
        return False
    if parsed.scheme == "file":
        return bool(parsed.path)
    return bool(parsed.netloc)


def is_valid_selector(selector: str) -> bool:
    """粗略的 CSS 选择器检查"""
    selector = selector.strip()
    if not selector:
        return False
    if ">>" in selector or "<<<" in selector:
        return False
    if selector in (".", "#"):
        return False
    return True


def format_validation_results(result: ValidationResult) -> str:
    lines = []
    if result.valid:
        lines.append("✅ Script validation passed")
    else:
        lines.append("❌ Script validation failed")
        lines.append("")
        for error in result.errors:
            step_info = f" (Step {error.step})" if error.step else ""
            lines.append(f"Error in {error.field}{step_info}: {error.message}")

    if result.warnings:
        lines.append("")
        lines.append("⚠️  Warnings:")
        for warning in result.warnings:
            lines.append(f"  {warning}")

    return "\n".join(lines)
