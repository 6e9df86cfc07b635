"""scriptrunner 包：执行声明式浏览器自动化脚本

包含各个模块：
- models: 数据模型
- config: 配置
- parser / validator: 脚本解析与校验
- errors: 错误分类
- retry: 智能重试
- logger: 会话日志
- history: 执行记录
- controller: Playwright 浏览器会话与动作执行
- engine: 执行引擎
"""

from .models import ActionStep, AutomationScript, ExecutionResult, Failure, Success
from .config import AutoConfig, define_config, load_config
from .errors import ErrorClassifier, calculate_retry_delay, classify_error
from .retry import execute_with_smart_retry
from .logger import LogLevel, SessionLogger
from .controller import PlaywrightController, PlaywrightProvider
from .engine import (
    ExecutionEngine,
    execute_script,
    execute_script_from_file,
    execute_script_from_string,
    format_execution_result,
)

__all__ = [
    "ActionStep",
    "AutomationScript",
    "ExecutionResult",
    "Success",
    "Failure",
    "AutoConfig",
    "define_config",
    "load_config",
    "ErrorClassifier",
    "classify_error",
    "calculate_retry_delay",
    "execute_with_smart_retry",
    "LogLevel",
    "SessionLogger",
    "PlaywrightController",
    "PlaywrightProvider",
    "ExecutionEngine",
    "execute_script",
    "execute_script_from_file",
    "execute_script_from_string",
    "format_execution_result",
]
