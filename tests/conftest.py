"""Shared fixtures for scriptrunner tests"""

from typing import Dict, List

import pytest

from scriptrunner.config import define_config
from scriptrunner.models import ActionStep, AutomationScript, BrowserSession, ok


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested durations (seconds)"""

    def __init__(self, events: List[str] = None):
        self.calls: List[float] = []
        self.events = events

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.events is not None:
            self.events.append("sleep")


class FakeExecutor:
    """
    Scripted action executor.

    outcomes maps a step number to a list of results (or exceptions);
    the last one repeats once the list is exhausted.
    """

    def __init__(self, outcomes: Dict[int, list] = None, screenshot_result=None):
        self.outcomes = outcomes or {}
        self.calls: List[int] = []
        self.screenshot_calls: List[tuple] = []
        self.screenshot_result = screenshot_result

    async def execute(self, step, timeout=None, step_number=None):
        self.calls.append(step_number)
        queue = self.outcomes.get(step_number)
        if queue:
            outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        elif step.type == "screenshot":
            outcome = ok(f"shots/step-{step_number}.png")
        else:
            outcome = ok(None)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def take_screenshot(self, filename=None, step_number=None, type="success"):
        self.screenshot_calls.append((filename, step_number, type))
        if self.screenshot_result is not None:
            if isinstance(self.screenshot_result, BaseException):
                raise self.screenshot_result
            return self.screenshot_result
        return ok(f"shots/{filename}")


class FakeProvider:
    def __init__(self, result=None, close_result=None):
        self.result = result
        self.close_result = close_result
        self.initialized = 0
        self.closed: List[BrowserSession] = []

    async def initialize(self, config, logger=None):
        self.initialized += 1
        if self.result is not None:
            return self.result
        return ok(BrowserSession(page=object(), context=object(), browser=object()))

    async def close(self, session):
        self.closed.append(session)
        return self.close_result or ok()


@pytest.fixture
def config(tmp_path):
    return define_config(
        {
            "actions": {"wait_between_actions": 0, "retry_attempts": 3, "screenshot_on_error": True},
            "logging": {"output_dir": str(tmp_path / "logs"), "level": "debug"},
        },
        environ={},
    )


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def three_step_script():
    return AutomationScript(
        name="checkout",
        steps=(
            ActionStep(type="navigate", url="https://shop.example.com"),
            ActionStep(type="click", selector="#buy"),
            ActionStep(type="screenshot"),
        ),
    )
