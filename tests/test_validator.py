"""Tests for script validation."""

from scriptrunner.models import ActionStep, AutomationScript
from scriptrunner.validator import format_validation_results, is_valid_selector, is_valid_url, validate_script


def script(*steps, **kwargs):
    return AutomationScript(name=kwargs.pop("name", "demo"), steps=tuple(steps), **kwargs)


class TestValidateScript:
    """Tests for validate_script."""

    def test_valid_script(self):
        result = validate_script(script(
            ActionStep(type="navigate", url="https://example.com"),
            ActionStep(type="wait", selector="#main"),
            ActionStep(type="screenshot"),
        ))

        assert result.valid
        assert result.warnings == []

    def test_empty_name_and_bad_base_url(self):
        result = validate_script(script(ActionStep(type="screenshot"), name="  ", base_url="not a url"))

        assert not result.valid
        assert [error.field for error in result.errors] == ["name", "baseUrl"]

    def test_no_steps(self):
        result = validate_script(script())
        assert [error.field for error in result.errors] == ["steps"]

    def test_step_errors_carry_step_number(self):
        result = validate_script(script(
            ActionStep(type="screenshot"),
            ActionStep(type="click", selector="div >> span"),
            ActionStep(type="navigate", url="example.com"),
            ActionStep(type="wait", timeout=-1),
        ))

        assert [(error.field, error.step) for error in result.errors] == [
            ("selector", 2),
            ("url", 3),
            ("timeout", 4),
        ]

    def test_malformed_url_reported_not_raised(self):
        """A URL that urlparse rejects becomes an ordinary url error."""
        result = validate_script(script(ActionStep(type="navigate", url="http://[oops")))

        assert not result.valid
        assert [(error.field, error.message, error.step) for error in result.errors] == [
            ("url", "Invalid URL format", 1),
        ]

    def test_pattern_warnings(self):
        result = validate_script(script(
            ActionStep(type="navigate", url="https://example.com"),
            ActionStep(type="click", selector="#a"),
            ActionStep(type="click", selector="#b"),
        ))

        assert result.valid
        assert "Step 1: Consider adding a wait after navigation for better reliability" in result.warnings
        assert "Step 2: Multiple consecutive clicks without wait may cause issues" in result.warnings

    def test_long_script_without_screenshot(self):
        steps = [ActionStep(type="wait", timeout=200) for _ in range(11)]
        result = validate_script(script(*steps))
        assert any("Long script without screenshots" in warning for warning in result.warnings)

    def test_step_warnings(self):
        result = validate_script(script(
            ActionStep(type="wait", timeout=50),
            ActionStep(type="type", selector="#q", value="x" * 1001),
            ActionStep(type="scroll", selector="main", value=20000),
            ActionStep(type="wait", timeout=70000),
            ActionStep(type="screenshot"),
        ))

        assert result.valid
        assert "Step 1: Very short wait time (50ms)" in result.warnings
        assert "Step 2: Very long text input (1001 chars)" in result.warnings
        assert "Step 3: Large scroll distance (20000px)" in result.warnings
        assert "Step 4: Timeout over 60 seconds may be too long" in result.warnings


class TestHelpers:
    """Tests for URL and selector helpers."""

    def test_urls(self):
        assert is_valid_url("https://example.com/path?q=1")
        assert is_valid_url("file:///tmp/page.html")
        assert not is_valid_url("example.com")
        assert not is_valid_url("https://")
        assert not is_valid_url("http://[oops")

    def test_selectors(self):
        assert is_valid_selector("#id")
        assert is_valid_selector("form input[name='q']")
        assert not is_valid_selector("   ")
        assert not is_valid_selector("#")
        assert not is_valid_selector("a >> b")

    def test_format_results(self):
        result = validate_script(script(
            ActionStep(type="navigate", url="https://example.com"),
            ActionStep(type="click", selector="#"),
        ))

        text = format_validation_results(result)

        assert text.startswith("❌ Script validation failed")
        assert "Error in selector (Step 2): Invalid CSS selector format" in text
        assert "Warnings:" in text
