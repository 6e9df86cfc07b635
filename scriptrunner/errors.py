"""错误分类模块：把原始错误信息映射为带重试策略的分类错误"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .models import ActionStep, Backoff, ClassifiedError, ErrorContext, ErrorType, RetryStrategy

# 每类错误的默认重试策略，启动时构建一次，只读
DEFAULT_RETRY_STRATEGIES: Mapping[ErrorType, RetryStrategy] = MappingProxyType({
    ErrorType.NETWORK_ERROR: RetryStrategy(max_attempts=5, delay=2000, backoff=Backoff.EXPONENTIAL),
    ErrorType.TIMEOUT_ERROR: RetryStrategy(max_attempts=3, delay=3000, backoff=Backoff.LINEAR),
    ErrorType.ELEMENT_NOT_FOUND: RetryStrategy(max_attempts=4, delay=1500, backoff=Backoff.FIXED),
    ErrorType.ELEMENT_NOT_VISIBLE: RetryStrategy(max_attempts=3, delay=1000, backoff=Backoff.FIXED),
    ErrorType.ELEMENT_NOT_CLICKABLE: RetryStrategy(max_attempts=3, delay=1000, backoff=Backoff.FIXED),
    ErrorType.NAVIGATION_ERROR: RetryStrategy(max_attempts=3, delay=2000, backoff=Backoff.EXPONENTIAL),
    ErrorType.SCREENSHOT_ERROR: RetryStrategy(max_attempts=2, delay=500, backoff=Backoff.FIXED),
    ErrorType.VALIDATION_ERROR: RetryStrategy(max_attempts=1, delay=0, backoff=Backoff.FIXED),
    ErrorType.BROWSER_ERROR: RetryStrategy(max_attempts=2, delay=3000, backoff=Backoff.FIXED),
    ErrorType.UNKNOWN_ERROR: RetryStrategy(max_attempts=2, delay=1000, backoff=Backoff.FIXED),
})


def _selector_of(step: Optional[ActionStep]) -> str:
    return step.selector if step and step.selector else "unknown selector"


@dataclass(frozen=True)
class ClassificationRule:
    """一条分类规则：关键字任一命中即归入 error_type"""
    error_type: ErrorType
    keywords: Tuple[str, ...]
    retryable: bool
    describe: Callable[[str, Optional[ActionStep]], str]
    with_selector: bool = False
    with_url: bool = False

    def matches(self, lowered: str) -> bool:
        return any(keyword in lowered for keyword in self.keywords)


# 顺序即优先级：部分关键字有重叠（如 "timeout" 与 "waiting for"），先命中者生效
CLASSIFICATION_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        ErrorType.NETWORK_ERROR,
        ("net::", "network", "connection", "dns", "refused"),
        True,
        lambda raw, step: "Network connection issue detected",
    ),
    ClassificationRule(
        ErrorType.TIMEOUT_ERROR,
        ("timeout", "timed out", "waiting for"),
        True,
        lambda raw, step: "Operation timed out",
        with_selector=True,
    ),
    ClassificationRule(
        ErrorType.ELEMENT_NOT_FOUND,
        ("no element", "not found", "cannot find", "element not found"),
        True,
        lambda raw, step: f"Element not found: {_selector_of(step)}",
        with_selector=True,
    ),
    ClassificationRule(
        ErrorType.ELEMENT_NOT_VISIBLE,
        ("not visible", "hidden", "not displayed"),
        True,
        lambda raw, step: f"Element not visible: {_selector_of(step)}",
        with_selector=True,
    ),
    ClassificationRule(
        ErrorType.ELEMENT_NOT_CLICKABLE,
        ("not clickable", "not interactable", "click intercepted"),
        True,
        lambda raw, step: f"Element not clickable: {_selector_of(step)}",
        with_selector=True,
    ),
    ClassificationRule(
        ErrorType.NAVIGATION_ERROR,
        ("navigation", "page crashed", "page.goto"),
        True,
        lambda raw, step: f"Navigation failed: {step.url if step and step.url else 'unknown URL'}",
        with_url=True,
    ),
    ClassificationRule(
        ErrorType.SCREENSHOT_ERROR,
        ("screenshot",),
        True,
        lambda raw, step: "Screenshot capture failed",
    ),
    ClassificationRule(
        ErrorType.VALIDATION_ERROR,
        ("validation", "invalid"),
        False,
        lambda raw, step: "Script validation failed",
    ),
    ClassificationRule(
        ErrorType.BROWSER_ERROR,
        ("browser", "context", "playwright"),
        True,
        lambda raw, step: "Browser operation failed",
    ),
)

FALLBACK_RULE = ClassificationRule(
    ErrorType.UNKNOWN_ERROR,
    (),
    True,
    lambda raw, step: f"Unknown error: {raw}",
)


class ErrorClassifier:
    """
    无状态分类器：按规则顺序做大小写无关的子串匹配，首个命中生效。
    对任何输入都返回恰好一个分类，从不抛异常。
    """

    def __init__(
        self,
        strategies: Mapping[ErrorType, RetryStrategy] = DEFAULT_RETRY_STRATEGIES,
        rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES,
    ):
        # 缺失的类型回落到默认策略
        merged = dict(DEFAULT_RETRY_STRATEGIES)
        merged.update(strategies)
        self.strategies: Mapping[ErrorType, RetryStrategy] = MappingProxyType(merged)
        self.rules: Tuple[ClassificationRule, ...] = tuple(rules)

    def rule_for(self, raw_message: str) -> ClassificationRule:
        lowered = str(raw_message).lower()
        for rule in self.rules:
            if rule.matches(lowered):
                return rule
        return FALLBACK_RULE

    def classify(
        self,
        raw_message: str,
        step: Optional[ActionStep] = None,
        step_number: Optional[int] = None,
    ) -> ClassifiedError:
        raw_message = str(raw_message)
        rule = self.rule_for(raw_message)
        context = ErrorContext(
            step=step,
            step_number=step_number,
            selector=step.selector if rule.with_selector and step else None,
            url=step.url if rule.with_url and step else None,
        )
        return ClassifiedError(
            type=rule.error_type,
            original_error=raw_message,
            message=rule.describe(raw_message, step),
            is_retryable=rule.retryable,
            strategy=self.strategies[rule.error_type],
            context=context,
        )


DEFAULT_CLASSIFIER = ErrorClassifier()


def classify_error(
    raw_message: str,
    step: Optional[ActionStep] = None,
    step_number: Optional[int] = None,
) -> ClassifiedError:
    return DEFAULT_CLASSIFIER.classify(raw_message, step, step_number)


def calculate_retry_delay(strategy: RetryStrategy, attempt: int) -> int:
    """根据退避方式计算第 attempt 次失败后的等待毫秒数"""
    backoff = Backoff(strategy.backoff)
    if backoff is Backoff.EXPONENTIAL:
        return strategy.delay * 2 ** (attempt - 1)
    if backoff is Backoff.LINEAR:
        return strategy.delay * attempt
    return strategy.delay


def get_error_summary(error: ClassifiedError) -> str:
    lines = [
        f"Error Type: {error.type.value}",
        f"Message: {error.message}",
        f"Retryable: {'Yes' if error.is_retryable else 'No'}",
    ]
    if error.context.selector:
        lines.append(f"Selector: {error.context.selector}")
    if error.context.url:
        lines.append(f"URL: {error.context.url}")
    lines.append(f"Max Attempts: {error.strategy.max_attempts}")
    lines.append(f"Retry Strategy: {Backoff(error.strategy.backoff).value}")
    lines.append(f"Original Error: {error.original_error}")
    return "\n".join(lines)


def is_critical_error(error: ClassifiedError) -> bool:
    """是否应立即停止整个执行"""
    return (
        error.type in (ErrorType.VALIDATION_ERROR, ErrorType.BROWSER_ERROR)
        or (not error.is_retryable and error.type is not ErrorType.SCREENSHOT_ERROR)
    )


_RECOMMENDATIONS = (
    (ErrorType.NETWORK_ERROR, "Check network connectivity and target website availability"),
    (ErrorType.TIMEOUT_ERROR, "Consider increasing timeout values for slow-loading elements"),
    (ErrorType.ELEMENT_NOT_FOUND, "Verify element selectors are correct and elements exist"),
    (ErrorType.ELEMENT_NOT_VISIBLE, "Check if elements are hidden or need scrolling to become visible"),
)


def generate_error_report(errors: Sequence[ClassifiedError], execution_time: int) -> str:
    """按错误类型分组生成分析报告"""
    lines = ["=" * 60, "ERROR ANALYSIS REPORT", "=" * 60]
    lines.append(f"Total Errors: {len(errors)}")
    lines.append(f"Execution Time: {execution_time}ms")
    lines.append("")

    by_type: Dict[ErrorType, List[ClassifiedError]] = {}
    for error in errors:
        by_type.setdefault(error.type, []).append(error)

    lines.append("ERRORS BY TYPE:")
    lines.append("-" * 40)
    for error_type, grouped in by_type.items():
        lines.append(f"{error_type.value}: {len(grouped)} occurrences")
        for index, error in enumerate(grouped, start=1):
            step_number = error.context.step_number or "unknown"
            lines.append(f"  {index}. Step {step_number}: {error.message}")
        lines.append("")

    lines.append("RECOMMENDATIONS:")
    lines.append("-" * 40)
    for error_type, advice in _RECOMMENDATIONS:
        if error_type in by_type:
            lines.append(f"• {advice}")

    lines.append("=" * 60)
    return "\n".join(lines)
