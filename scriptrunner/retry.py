"""重试模块：按错误分类决定是否重试、等待多久"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar, TYPE_CHECKING

from .errors import DEFAULT_CLASSIFIER, ErrorClassifier, calculate_retry_delay
from .models import ActionStep, ClassifiedError, Failure, Result, RetryStrategy

if TYPE_CHECKING:
    from .logger import SessionLogger

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


class RecoveryTiming(str, Enum):
    """恢复动作相对退避等待的执行时机"""
    BEFORE_DELAY = "before_delay"
    AFTER_DELAY = "after_delay"


def _notice(logger: Optional["SessionLogger"], level: str, message: str, step_number: Optional[int]) -> None:
    if logger is not None:
        getattr(logger, level)(message, step=step_number)
    else:
        print(message)


async def _run_recovery_actions(
    strategy: RetryStrategy,
    verbose: bool,
    logger: Optional["SessionLogger"],
    step_number: Optional[int],
) -> None:
    """依次执行恢复动作；失败只记录，不中断重试，也不重试恢复动作本身"""
    for action in strategy.recovery_actions:
        try:
            await action()
        except Exception as e:
            if verbose:
                _notice(logger, "warn", f"⚠ Recovery action failed: {e}", step_number)


async def execute_with_smart_retry(
    operation: Callable[[], Awaitable[Result[T]]],
    retry_budget: int,
    verbose: bool = False,
    step: Optional[ActionStep] = None,
    step_number: Optional[int] = None,
    *,
    classifier: Optional[ErrorClassifier] = None,
    sleep: Sleep = asyncio.sleep,
    recovery_timing: RecoveryTiming = RecoveryTiming.BEFORE_DELAY,
    logger: Optional["SessionLogger"] = None,
) -> Result[T]:
    """
    执行 operation，声明式失败（返回 Failure）按分类重试；
    operation 内部抛出的异常只分类、不重试。

    实际最大次数 = min(该类错误的 max_attempts, retry_budget)。
    """
    classifier = classifier or DEFAULT_CLASSIFIER
    recovery_timing = RecoveryTiming(recovery_timing)
    last_error: Optional[ClassifiedError] = None
    attempt = 1

    while True:
        try:
            result = await operation()
        except Exception as e:
            last_error = classifier.classify(str(e), step, step_number)
            break

        if result.success:
            if attempt > 1 and verbose:
                _notice(logger, "info", f"✓ Step {step_number} succeeded on attempt {attempt}", step_number)
            return result

        last_error = classifier.classify(result.error, step, step_number)
        strategy = last_error.strategy
        max_attempts = min(strategy.max_attempts, retry_budget)

        if not last_error.is_retryable or attempt >= max_attempts:
            break

        if verbose:
            _notice(
                logger,
                "warn",
                f"⚠ Step {step_number} failed (attempt {attempt}/{max_attempts}): {last_error.message}",
                step_number,
            )

        if recovery_timing is RecoveryTiming.BEFORE_DELAY:
            await _run_recovery_actions(strategy, verbose, logger, step_number)

        delay = calculate_retry_delay(strategy, attempt)
        if delay > 0:
            if verbose:
                _notice(logger, "info", f"  Retrying in {delay}ms...", step_number)
            await sleep(delay / 1000)

        if recovery_timing is RecoveryTiming.AFTER_DELAY:
            await _run_recovery_actions(strategy, verbose, logger, step_number)

        attempt += 1

    if last_error is None:
        return Failure("Operation failed with unknown error")
    return Failure(
        f"{last_error.message} ({last_error.type.value}, attempted {attempt} times)",
        cause=last_error,
    )
