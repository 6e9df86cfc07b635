"""执行引擎：校验 → 启动浏览器 → 逐步执行（带重试）→ 汇总结果 → 释放资源

两种失败的区分：
- 脚本根本无法开始（校验失败、浏览器不可用）：返回 Failure
- 脚本开始执行但某一步失败：返回 Success(ExecutionResult(success=False))
"""

import asyncio
import json
import time
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Union

from .config import AutoConfig
from .controller import PlaywrightController, PlaywrightProvider
from .errors import ErrorClassifier, generate_error_report
from .history import ExecutionHistory, format_records
from .logger import SessionLogger
from .models import (
    ActionStep,
    AutomationScript,
    BrowserSession,
    ClassifiedError,
    ErrorAnalysis,
    ExecutionResult,
    Result,
    ValidationResult,
    fail,
    ok,
)
from .parser import parse_script_from_file, parse_script_from_string
from .retry import RecoveryTiming, Sleep, execute_with_smart_retry
from .validator import format_validation_results, validate_script


class ActionExecutor(Protocol):
    async def execute(
        self, step: ActionStep, timeout: Optional[int] = None, step_number: Optional[int] = None
    ) -> Result[Optional[str]]: ...

    async def take_screenshot(
        self, filename: Optional[str] = None, step_number: Optional[int] = None, type: str = "success"
    ) -> Result[str]: ...


class BrowserProvider(Protocol):
    async def initialize(self, config: AutoConfig, logger: Optional[SessionLogger] = None) -> Result[BrowserSession]: ...

    async def close(self, session: BrowserSession) -> Result[None]: ...


ExecutorFactory = Callable[[BrowserSession, AutoConfig, SessionLogger], ActionExecutor]
Validator = Callable[[AutomationScript], ValidationResult]


def get_step_summary(step: ActionStep) -> str:
    """单步的可读描述"""
    if step.type == "navigate":
        return f"Navigate to {step.url}"
    if step.type == "click":
        return f"Click {step.selector}"
    if step.type == "type":
        return f'Type "{step.value}" into {step.selector}'
    if step.type == "wait":
        return f"Wait for {step.selector}" if step.selector else f"Wait {step.timeout}ms"
    if step.type == "screenshot":
        return "Take screenshot"
    if step.type == "scroll":
        by = f" by {step.value}px" if step.value else ""
        return f"Scroll {step.selector}{by}"
    if step.type == "select":
        return f'Select "{step.value}" from {step.selector}'
    if step.type == "alert":
        return f"Handle alert ({step.value or 'accept'})"
    return f"Execute {step.type}"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class ExecutionEngine:
    """脚本执行引擎，每次 run 独占一个日志会话和一个浏览器会话"""

    def __init__(
        self,
        config: AutoConfig,
        provider: Optional[BrowserProvider] = None,
        executor_factory: Optional[ExecutorFactory] = None,
        validator: Validator = validate_script,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config
        self.provider = provider or PlaywrightProvider()
        self.executor_factory = executor_factory or PlaywrightController
        self.validator = validator
        self.classifier = classifier
        self.sleep = sleep
        self.logger: Optional[SessionLogger] = None

    async def run(self, script: AutomationScript) -> Result[ExecutionResult]:
        started = time.monotonic()
        logger = SessionLogger(self.config)
        self.logger = logger
        history = ExecutionHistory()
        screenshots: List[str] = []
        errors: List[ClassifiedError] = []
        session: Optional[BrowserSession] = None
        total = len(script.steps)
        verbose = self.config.logging.verbose

        def build(success: bool, steps_executed: int, error: Optional[str] = None) -> ExecutionResult:
            execution_time = _elapsed_ms(started)
            analysis = None
            if errors:
                analysis = ErrorAnalysis(tuple(errors), generate_error_report(errors, execution_time))
            summary = logger.get_session_summary()
            return ExecutionResult(
                success=success,
                steps_executed=steps_executed,
                total_steps=total,
                execution_time=execution_time,
                screenshots=tuple(screenshots),
                error=error,
                logs=history.snapshot(),
                error_analysis=analysis,
                session_id=summary.session_id,
                log_file_path=summary.log_file_path,
            )

        try:
            logger.info("Starting script execution", {
                "scriptName": script.name,
                "description": script.description,
                "totalSteps": total,
            })

            # 1. 校验
            try:
                validation = self.validator(script)
            except Exception as e:
                logger.error("Script validation raised", {"error": str(e)})
                return fail(f"Script validation failed: {e}")

            if validation.errors:
                logger.validation("Script validation failed", validation.errors, validation.warnings)
                return fail(f"Script validation failed:\n{format_validation_results(validation)}")

            if validation.warnings:
                logger.validation("Script validation completed with warnings", [], validation.warnings)
                if verbose:
                    history.record(0, "validation", "warning", format_validation_results(validation))
            else:
                logger.validation("Script validation passed")

            # 2. 启动浏览器
            try:
                browser_result = await self.provider.initialize(self.config, logger)
            except Exception as e:
                browser_result = fail(str(e))
            if not browser_result.success:
                logger.error("Failed to initialize browser", {"error": browser_result.error})
                return fail(f"Failed to initialize browser: {browser_result.error}")

            session = browser_result.data
            if session is None or session.page is None:
                logger.error("Browser page is not available")
                return fail("Browser page is not available")

            try:
                executor = self.executor_factory(session, self.config, logger)
            except Exception as e:
                logger.error("Failed to create action executor", {"error": str(e)})
                return fail(f"Failed to initialize browser: {e}")

            history.record(0, "browser_init", "success", f"Browser initialized: {self.config.browser.type}")

            # 3. 逐步执行
            steps_executed = 0
            for index, step in enumerate(script.steps):
                number = index + 1
                summary = get_step_summary(step)

                if self.config.actions.wait_between_actions > 0:
                    await self.sleep(self.config.actions.wait_between_actions / 1000)

                step_started = time.monotonic()
                logger.info(f"Starting step {number}", {
                    "stepNumber": number,
                    "action": step.type,
                    "summary": summary,
                }, number)

                try:
                    outcome = await execute_with_smart_retry(
                        partial(executor.execute, step, step.timeout or self.config.browser.timeout, number),
                        self.config.actions.retry_attempts,
                        verbose,
                        step,
                        number,
                        classifier=self.classifier,
                        sleep=self.sleep,
                        recovery_timing=RecoveryTiming(self.config.actions.recovery_timing),
                        logger=logger,
                    )
                except Exception as e:
                    duration = _elapsed_ms(step_started)
                    logger.error(f"Unexpected error in step {number}", {
                        "step": number,
                        "action": step.type,
                        "error": str(e),
                    })
                    history.record(number, step.type, "error", f"Unexpected error: {e}", duration)
                    logger.debug("Recent steps before failure", {"history": history.format_history(last_n=5)}, number)
                    return ok(build(False, steps_executed, str(e)))

                duration = _elapsed_ms(step_started)

                if outcome.success:
                    steps_executed += 1
                    if step.type == "screenshot" and outcome.data:
                        screenshots.append(outcome.data)
                    logger.step(number, step.type, summary, duration, True)
                    history.record(number, step.type, "success", summary, duration)
                    continue

                if outcome.cause is not None:
                    errors.append(outcome.cause)

                if step.optional:
                    # 可选步骤失败不中止脚本
                    steps_executed += 1
                    logger.warn(f"Optional step {number} failed, continuing", {"error": outcome.error}, number)
                    history.record(number, step.type, "warning", f"Skipped: {outcome.error}", duration)
                    continue

                logger.step(number, step.type, f"Failed: {outcome.error}", duration, False)
                history.record(number, step.type, "error", f"Failed: {outcome.error}", duration)
                logger.debug("Recent steps before failure", {"history": history.format_history(last_n=5)}, number)

                if self.config.actions.screenshot_on_error:
                    await self._capture_error_screenshot(executor, number, screenshots, logger)

                return ok(build(False, steps_executed, outcome.error))

            # 4. 完成
            execution_time = _elapsed_ms(started)
            logger.info("Script execution completed successfully", {
                "stepsExecuted": steps_executed,
                "totalSteps": total,
                "executionTime": execution_time,
                "screenshotCount": len(screenshots),
            })
            history.record(0, "completion", "success", f"Script completed successfully in {execution_time}ms")
            return ok(build(True, steps_executed))

        finally:
            # 5. 收尾：无论走哪条路径都释放浏览器并结束日志会话
            if session is not None:
                try:
                    closed = await self.provider.close(session)
                except Exception as e:
                    closed = fail(str(e))
                if closed.success:
                    logger.browser("cleanup", "Browser closed")
                else:
                    logger.warn("Failed to close browser cleanly", {"error": closed.error})
            await logger.cleanup()

    async def _capture_error_screenshot(
        self,
        executor: ActionExecutor,
        step_number: int,
        screenshots: List[str],
        logger: SessionLogger,
    ) -> None:
        """失败现场截图，尽力而为，失败只记录"""
        filename = f"error-step-{step_number}-{int(time.time() * 1000)}.png"
        try:
            shot = await executor.take_screenshot(filename, step_number, "error")
        except Exception as e:
            logger.error("Failed to capture error screenshot", {"step": step_number, "error": str(e)})
            return
        if shot.success:
            screenshots.append(shot.data)
        else:
            logger.error("Failed to capture error screenshot", {"step": step_number, "error": shot.error})


async def execute_script(script: AutomationScript, config: AutoConfig, **engine_options) -> Result[ExecutionResult]:
    return await ExecutionEngine(config, **engine_options).run(script)


async def execute_script_from_string(content: str, config: AutoConfig, **engine_options) -> Result[ExecutionResult]:
    parsed = parse_script_from_string(content)
    if not parsed.success:
        return fail(f"Failed to parse script: {parsed.error}")
    return await execute_script(parsed.data, config, **engine_options)


async def execute_script_from_file(
    file_path: Union[str, Path], config: AutoConfig, **engine_options
) -> Result[ExecutionResult]:
    parsed = await asyncio.to_thread(parse_script_from_file, file_path)
    if not parsed.success:
        return fail(f"Failed to parse script: {parsed.error}")
    return await execute_script(parsed.data, config, **engine_options)


def format_execution_result(result: ExecutionResult) -> str:
    """控制台输出用的执行报告"""
    lines = ["=" * 60, "AUTOMATION EXECUTION RESULT", "=" * 60]

    if result.success:
        lines.append(f"✅ SUCCESS: All {result.total_steps} steps completed")
    else:
        lines.append(f"❌ FAILED: {result.steps_executed}/{result.total_steps} steps completed")
        if result.error:
            lines.append(f"Error: {result.error}")

    lines.append(f"⏱ Execution time: {result.execution_time}ms")
    if result.session_id:
        lines.append(f"🆔 Session: {result.session_id}")
    if result.log_file_path:
        lines.append(f"📄 Log file: {result.log_file_path}")

    if result.screenshots:
        lines.append(f"📸 Screenshots: {len(result.screenshots)}")
        for path in result.screenshots:
            lines.append(f"  - {path}")

    lines.append("")
    lines.append("EXECUTION LOG:")
    lines.append("-" * 40)
    lines.extend(format_records(result.logs))

    if result.error_analysis is not None:
        lines.append("")
        lines.append(result.error_analysis.report)

    lines.append("=" * 60)
    return "\n".join(lines)


async def save_execution_result(result: ExecutionResult, output_path: Union[str, Path]) -> Result[None]:
    content = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    try:
        await asyncio.to_thread(Path(output_path).write_text, content, encoding="utf-8")
    except OSError as e:
        return fail(f"Failed to save execution result: {e}")
    return ok()
