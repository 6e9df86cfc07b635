"""Tests for the execution engine."""

import json
from pathlib import Path

import pytest

from conftest import FakeExecutor, FakeProvider, RecordingSleep
from scriptrunner.config import define_config
from scriptrunner.engine import (
    ExecutionEngine,
    execute_script_from_file,
    execute_script_from_string,
    format_execution_result,
    get_step_summary,
    save_execution_result,
)
from scriptrunner.errors import ErrorClassifier
from scriptrunner.models import ActionStep, AutomationScript, BrowserSession, ErrorType, ExecutionResult, fail, ok


def make_engine(config, provider=None, executor=None, sleep=None, **options):
    executor = executor or FakeExecutor()
    return ExecutionEngine(
        config,
        provider=provider or FakeProvider(),
        executor_factory=lambda session, cfg, logger: executor,
        sleep=sleep or RecordingSleep(),
        **options,
    )


class TestOrchestrationFailures:
    """Cases where the script never starts."""

    @pytest.mark.asyncio
    async def test_invalid_script_never_touches_browser(self, config):
        provider = FakeProvider()
        script = AutomationScript(name="", steps=(ActionStep(type="click", selector="#a"),))

        outcome = await make_engine(config, provider).run(script)

        assert not outcome.success
        assert outcome.error.startswith("Script validation failed:")
        assert "Script name cannot be empty" in outcome.error
        assert provider.initialized == 0
        assert provider.closed == []

    @pytest.mark.asyncio
    async def test_malformed_url_is_structured_validation_error(self, config):
        provider = FakeProvider()
        script = AutomationScript(name="x", steps=(ActionStep(type="navigate", url="http://[oops"),))

        outcome = await make_engine(config, provider).run(script)

        assert not outcome.success
        assert "Error in url (Step 1): Invalid URL format" in outcome.error
        assert "Invalid IPv6 URL" not in outcome.error
        assert provider.initialized == 0

    @pytest.mark.asyncio
    async def test_validator_exception(self, config):
        def exploding_validator(script):
            raise RuntimeError("validator crashed")

        outcome = await make_engine(config, validator=exploding_validator).run(
            AutomationScript(name="x", steps=(ActionStep(type="screenshot"),))
        )

        assert not outcome.success
        assert outcome.error == "Script validation failed: validator crashed"

    @pytest.mark.asyncio
    async def test_browser_init_failure(self, config, three_step_script):
        provider = FakeProvider(result=fail("Executable doesn't exist"))

        outcome = await make_engine(config, provider).run(three_step_script)

        assert not outcome.success
        assert outcome.error == "Failed to initialize browser: Executable doesn't exist"
        assert provider.closed == []

    @pytest.mark.asyncio
    async def test_missing_page_still_closes_session(self, config, three_step_script):
        session = BrowserSession(page=None, context=object(), browser=object())
        provider = FakeProvider(result=ok(session))
        executor = FakeExecutor()

        outcome = await make_engine(config, provider, executor).run(three_step_script)

        assert not outcome.success
        assert outcome.error == "Browser page is not available"
        assert provider.closed == [session]
        assert executor.calls == []


class TestStepExecution:
    """Cases where the script runs."""

    @pytest.mark.asyncio
    async def test_all_steps_succeed(self, config, three_step_script):
        provider = FakeProvider()
        executor = FakeExecutor()

        engine = make_engine(config, provider, executor)
        outcome = await engine.run(three_step_script)

        assert outcome.success
        result = outcome.data
        assert result.success
        assert result.steps_executed == 3
        assert result.total_steps == 3
        assert result.screenshots == ("shots/step-3.png",)
        assert result.error is None
        assert result.error_analysis is None
        assert executor.calls == [1, 2, 3]
        assert len(provider.closed) == 1

        actions = [log.action for log in result.logs]
        assert actions == ["browser_init", "navigate", "click", "screenshot", "completion"]
        assert result.session_id == engine.logger.session_id
        assert engine.logger.closed

    @pytest.mark.asyncio
    async def test_failed_step_stops_execution(self, config, three_step_script, sleep):
        """Step 2 fails permanently: one step executed, error screenshot taken, step 3 never runs."""
        executor = FakeExecutor({2: [fail("Element not found: #buy")]})
        provider = FakeProvider()

        engine = make_engine(config, provider, executor, sleep)
        outcome = await engine.run(three_step_script)

        assert outcome.success
        result = outcome.data
        assert not result.success
        assert result.steps_executed == 1
        assert result.total_steps == 3
        assert "element_not_found, attempted 3 times" in result.error
        assert executor.calls == [1, 2, 2, 2]
        assert sleep.calls == [1.5, 1.5]

        filename, step_number, kind = executor.screenshot_calls[0]
        assert filename.startswith("error-step-2-") and filename.endswith(".png")
        assert (step_number, kind) == (2, "error")
        assert result.screenshots == (f"shots/{filename}",)

        assert result.error_analysis.errors[0].type is ErrorType.ELEMENT_NOT_FOUND
        assert "ERROR ANALYSIS REPORT" in result.error_analysis.report
        assert result.logs[-1].status == "error"
        assert result.logs[-1].message.startswith("Failed: ")
        assert len(provider.closed) == 1
        recent = [entry for entry in engine.logger.entries if entry.message == "Recent steps before failure"]
        assert recent[0].step == 2
        assert "Step 1: Navigate to https://shop.example.com" in recent[0].data["history"]
        assert "Step 2: Failed: " in recent[0].data["history"]

    @pytest.mark.asyncio
    async def test_no_error_screenshot_when_disabled(self, tmp_path, three_step_script):
        config = define_config(
            {
                "actions": {"waitBetweenActions": 0, "screenshotOnError": False},
                "logging": {"outputDir": str(tmp_path)},
            },
            environ={},
        )
        executor = FakeExecutor({1: [fail("invalid url")]})

        outcome = await make_engine(config, executor=executor).run(three_step_script)

        assert not outcome.data.success
        assert outcome.data.steps_executed == 0
        assert executor.screenshot_calls == []

    @pytest.mark.asyncio
    async def test_error_screenshot_failure_is_tolerated(self, config, three_step_script):
        executor = FakeExecutor({2: [fail("invalid selector")]}, screenshot_result=fail("page gone"))

        outcome = await make_engine(config, executor=executor).run(three_step_script)

        result = outcome.data
        assert not result.success
        assert result.screenshots == ()

    @pytest.mark.asyncio
    async def test_optional_step_failure_continues(self, config):
        script = AutomationScript(
            name="cookies",
            steps=(
                ActionStep(type="wait", timeout=500),
                ActionStep(type="click", selector="#accept-cookies", optional=True),
                ActionStep(type="screenshot"),
            ),
        )
        executor = FakeExecutor({2: [fail("invalid selector")]})

        outcome = await make_engine(config, executor=executor).run(script)

        result = outcome.data
        assert result.success
        assert result.steps_executed == 3
        assert [log.status for log in result.logs if log.step == 2] == ["warning"]
        assert len(result.error_analysis.errors) == 1
        assert executor.screenshot_calls == []

    @pytest.mark.asyncio
    async def test_executor_exception_is_classified(self, config, three_step_script):
        """Exceptions raised by an action are classified and end the run without retry."""
        executor = FakeExecutor({1: [RuntimeError("driver crashed")]})

        outcome = await make_engine(config, executor=executor).run(three_step_script)

        result = outcome.data
        assert not result.success
        assert executor.calls == [1]
        assert result.error == "Unknown error: driver crashed (unknown_error, attempted 1 times)"

    @pytest.mark.asyncio
    async def test_unexpected_error_outside_action(self, config, three_step_script):
        class BrokenClassifier(ErrorClassifier):
            def classify(self, raw_message, step=None, step_number=None):
                raise RuntimeError("classifier bug")

        executor = FakeExecutor({1: [fail("whatever")]})
        provider = FakeProvider()

        outcome = await make_engine(
            config, provider, executor, classifier=BrokenClassifier(),
        ).run(three_step_script)

        assert outcome.success
        assert not outcome.data.success
        assert outcome.data.error == "classifier bug"
        assert outcome.data.logs[-1].message == "Unexpected error: classifier bug"
        assert len(provider.closed) == 1

    @pytest.mark.asyncio
    async def test_wait_between_actions_before_each_step(self, tmp_path, three_step_script, sleep):
        config = define_config(
            {"actions": {"wait_between_actions": 250}, "logging": {"output_dir": str(tmp_path)}},
            environ={},
        )

        await make_engine(config, sleep=sleep).run(three_step_script)

        assert sleep.calls == [0.25, 0.25, 0.25]

    @pytest.mark.asyncio
    async def test_step_timeout_overrides_browser_default(self, config):
        seen = []

        class TimeoutRecorder(FakeExecutor):
            async def execute(self, step, timeout=None, step_number=None):
                seen.append(timeout)
                return ok()

        script = AutomationScript(
            name="timeouts",
            steps=(ActionStep(type="click", selector="#a"), ActionStep(type="click", selector="#b", timeout=9000)),
        )

        await make_engine(config, executor=TimeoutRecorder()).run(script)

        assert seen == [config.browser.timeout, 9000]

    @pytest.mark.asyncio
    async def test_verbose_records_validation_warnings(self, tmp_path, three_step_script):
        config = define_config(
            {"actions": {"wait_between_actions": 0}, "logging": {"output_dir": str(tmp_path), "verbose": True}},
            environ={},
        )

        outcome = await make_engine(config).run(three_step_script)

        first = outcome.data.logs[0]
        assert first.action == "validation"
        assert first.status == "warning"
        assert "Consider adding a wait after navigation" in first.message

    @pytest.mark.asyncio
    async def test_close_failure_does_not_change_result(self, config, three_step_script):
        provider = FakeProvider(close_result=fail("browser: already gone"))

        outcome = await make_engine(config, provider).run(three_step_script)

        assert outcome.data.success

    @pytest.mark.asyncio
    async def test_session_log_written(self, config, three_step_script):
        engine = make_engine(config)

        outcome = await engine.run(three_step_script)

        log_path = outcome.data.log_file_path
        content = Path(log_path).read_text(encoding="utf-8")
        assert "Starting script execution" in content
        assert "Script execution completed successfully" in content
        assert "Session completed" in content


class TestEntryPoints:
    """Tests for string and file entry points and result helpers."""

    @pytest.mark.asyncio
    async def test_execute_from_string_parse_error(self, config):
        outcome = await execute_script_from_string("{not json", config)

        assert not outcome.success
        assert outcome.error.startswith("Failed to parse script: Failed to parse JSON")

    @pytest.mark.asyncio
    async def test_execute_from_string(self, config):
        content = json.dumps({"name": "s", "steps": [{"type": "screenshot"}]})

        outcome = await execute_script_from_string(
            content, config,
            provider=FakeProvider(),
            executor_factory=lambda session, cfg, logger: FakeExecutor(),
            sleep=RecordingSleep(),
        )

        assert outcome.data.success
        assert outcome.data.screenshots == ("shots/step-1.png",)

    @pytest.mark.asyncio
    async def test_execute_from_missing_file(self, config, tmp_path):
        outcome = await execute_script_from_file(tmp_path / "nope.json", config)

        assert not outcome.success
        assert "Failed to read automation script file" in outcome.error

    @pytest.mark.asyncio
    async def test_save_execution_result(self, tmp_path):
        result = ExecutionResult(success=False, steps_executed=1, total_steps=2, execution_time=10, error="boom")
        path = tmp_path / "result.json"

        saved = await save_execution_result(result, path)

        assert saved.success
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["stepsExecuted"] == 1
        assert data["error"] == "boom"

    def test_format_execution_result(self):
        result = ExecutionResult(
            success=False, steps_executed=1, total_steps=3, execution_time=50,
            screenshots=("shots/error.png",), error="Element not found: #x",
        )

        text = format_execution_result(result)

        assert "❌ FAILED: 1/3 steps completed" in text
        assert "Error: Element not found: #x" in text
        assert "  - shots/error.png" in text
        assert "Session:" not in text

    def test_format_execution_result_shows_session_and_log_file(self):
        result = ExecutionResult(
            success=True, steps_executed=1, total_steps=1, execution_time=5,
            session_id="2026-10-17T10-00-00-000000-abc123", log_file_path="logs/execution-abc.log",
        )

        text = format_execution_result(result)

        assert "🆔 Session: 2026-10-17T10-00-00-000000-abc123" in text
        assert "📄 Log file: logs/execution-abc.log" in text

    @pytest.mark.parametrize("step, expected", [
        (ActionStep(type="navigate", url="https://a.com"), "Navigate to https://a.com"),
        (ActionStep(type="type", selector="#q", value="hi"), 'Type "hi" into #q'),
        (ActionStep(type="wait", timeout=300), "Wait 300ms"),
        (ActionStep(type="scroll", selector="main", value=400), "Scroll main by 400px"),
        (ActionStep(type="alert", value="dismiss"), "Handle alert (dismiss)"),
    ])
    def test_step_summary(self, step, expected):
        assert get_step_summary(step) == expected
