"""配置模块：默认值、字典合并、环境变量覆盖"""

import json
import os
from dataclasses import dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv

# 默认配置文件名
DEFAULT_CONFIG_FILE = "auto.config.json"

BROWSER_TYPES = ("chromium", "firefox", "webkit")
LOG_LEVELS = ("debug", "info", "warn", "error")


@dataclass
class Viewport:
    width: int = 1920
    height: int = 1080


@dataclass
class BrowserConfig:
    """浏览器启动参数"""
    type: str = "chromium"
    headless: bool = True
    viewport: Viewport = field(default_factory=Viewport)
    slow_mo: int = 0
    timeout: int = 5000  # 毫秒，页面默认超时


@dataclass
class ActionConfig:
    """动作执行参数"""
    wait_between_actions: int = 1000  # 毫秒，每步之前等待
    retry_attempts: int = 3  # 全局重试预算
    screenshot_on_error: bool = True
    recovery_timing: str = "before_delay"  # before_delay|after_delay


@dataclass
class LoggingConfig:
    """日志参数"""
    level: str = "info"
    output_dir: str = "./logs"
    save_screenshots: bool = True
    verbose: bool = False
    format: str = "structured"  # structured|json|text
    max_file_size_mb: float = 50
    max_files: int = 10


@dataclass
class AutoConfig:
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    actions: ActionConfig = field(default_factory=ActionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# 字典键（兼容 camelCase）到字段名的映射
_KEY_ALIASES = {
    "slowMo": "slow_mo",
    "waitBetweenActions": "wait_between_actions",
    "retryAttempts": "retry_attempts",
    "screenshotOnError": "screenshot_on_error",
    "recoveryTiming": "recovery_timing",
    "outputDir": "output_dir",
    "saveScreenshots": "save_screenshots",
    "maxFileSizeMb": "max_file_size_mb",
    "maxFiles": "max_files",
}


def _merge(target: Any, overrides: Mapping[str, Any]) -> Any:
    """把字典递归合并到 dataclass 上，返回新对象；未知键忽略"""
    known = {f.name for f in fields(target)}
    changes: Dict[str, Any] = {}
    for raw_key, value in overrides.items():
        key = _KEY_ALIASES.get(raw_key, raw_key)
        if key not in known:
            continue
        current = getattr(target, key)
        if is_dataclass(current) and isinstance(value, Mapping):
            changes[key] = _merge(current, value)
        else:
            changes[key] = value
    return replace(target, **changes)


def _env_flag(value: str) -> bool:
    return value != "false"


def _env_int(environ: Mapping[str, str], name: str) -> Optional[int]:
    raw = environ.get(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        print(f"⚠ 忽略无效的环境变量 {name}={raw!r}")
        return None


def _apply_env(config: AutoConfig, environ: Mapping[str, str]) -> AutoConfig:
    browser = config.browser
    actions = config.actions
    logging = config.logging

    if environ.get("BROWSER_TYPE"):
        browser = replace(browser, type=environ["BROWSER_TYPE"])
    if "HEADLESS" in environ:
        browser = replace(browser, headless=_env_flag(environ["HEADLESS"]))

    width = _env_int(environ, "VIEWPORT_WIDTH")
    height = _env_int(environ, "VIEWPORT_HEIGHT")
    if width is not None or height is not None:
        browser = replace(
            browser,
            viewport=Viewport(
                width=width if width is not None else browser.viewport.width,
                height=height if height is not None else browser.viewport.height,
            ),
        )

    slow_mo = _env_int(environ, "SLOW_MO")
    if slow_mo is not None:
        browser = replace(browser, slow_mo=slow_mo)
    timeout = _env_int(environ, "TIMEOUT")
    if timeout is not None:
        browser = replace(browser, timeout=timeout)

    wait = _env_int(environ, "WAIT_BETWEEN_ACTIONS")
    if wait is not None:
        actions = replace(actions, wait_between_actions=wait)
    retries = _env_int(environ, "RETRY_ATTEMPTS")
    if retries is not None:
        actions = replace(actions, retry_attempts=retries)
    if "SCREENSHOT_ON_ERROR" in environ:
        actions = replace(actions, screenshot_on_error=_env_flag(environ["SCREENSHOT_ON_ERROR"]))

    if environ.get("LOG_LEVEL"):
        logging = replace(logging, level=environ["LOG_LEVEL"])
    if environ.get("LOG_OUTPUT_DIR"):
        logging = replace(logging, output_dir=environ["LOG_OUTPUT_DIR"])
    if "SAVE_SCREENSHOTS" in environ:
        logging = replace(logging, save_screenshots=_env_flag(environ["SAVE_SCREENSHOTS"]))
    if "VERBOSE" in environ:
        logging = replace(logging, verbose=_env_flag(environ["VERBOSE"]))

    return AutoConfig(browser=browser, actions=actions, logging=logging)


def define_config(
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AutoConfig:
    """
    生成最终配置：默认值 <- overrides 字典 <- 环境变量。
    """
    config = AutoConfig()
    if overrides:
        config = _merge(config, overrides)
    return _apply_env(config, os.environ if environ is None else environ)


def load_config(path: Union[str, Path, None] = None, environ: Optional[Mapping[str, str]] = None) -> AutoConfig:
    """
    读取 .env 与 JSON 配置文件；文件缺失或无效时使用默认配置。
    """
    load_dotenv()
    config_path = Path(path or DEFAULT_CONFIG_FILE)

    if not config_path.exists():
        print(f"⚠ 未找到配置文件 {config_path}，使用默认配置")
        return define_config(environ=environ)

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"❌ 加载配置失败: {e}，使用默认配置")
        return define_config(environ=environ)

    if not isinstance(data, dict):
        print("⚠ 配置格式无效，使用默认配置")
        return define_config(environ=environ)

    return define_config(data, environ=environ)
