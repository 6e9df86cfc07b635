"""数据模型定义"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

T = TypeVar("T")

ACTION_TYPES = ("navigate", "click", "type", "wait", "screenshot", "scroll", "select", "alert")


# ──────────────────────────────────────────────
# Result：组件边界上的成功 / 失败返回值
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class Success(Generic[T]):
    """成功结果，携带数据"""
    data: T

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """失败结果，携带可读的错误信息"""
    error: str
    cause: Optional["ClassifiedError"] = None  # 重试耗尽时最后一次的分类结果

    @property
    def success(self) -> bool:
        return False


Result = Union[Success[T], Failure]


def ok(data: T = None) -> Success[T]:
    return Success(data)


def fail(error: str, cause: Optional["ClassifiedError"] = None) -> Failure:
    return Failure(error, cause)


# ──────────────────────────────────────────────
# 脚本
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class ActionStep:
    """脚本中的单个动作"""
    type: str  # navigate|click|type|wait|screenshot|scroll|select|alert
    selector: Optional[str] = None
    value: Optional[Union[str, int, float]] = None
    url: Optional[str] = None
    timeout: Optional[int] = None  # 毫秒
    description: Optional[str] = None
    optional: bool = False  # 失败时不中止脚本
    frame: Optional[str] = None  # iframe 选择器
    prompt_text: Optional[str] = None  # alert 的 prompt 输入


@dataclass(frozen=True)
class AutomationScript:
    """自动化脚本：有序的动作序列"""
    name: str
    steps: Tuple[ActionStep, ...]
    description: Optional[str] = None
    base_url: Optional[str] = None


@dataclass(frozen=True)
class ValidationError:
    """结构校验错误"""
    field: str
    message: str
    step: Optional[int] = None


@dataclass
class ValidationResult:
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


# ──────────────────────────────────────────────
# 错误分类与重试
# ──────────────────────────────────────────────

class ErrorType(str, Enum):
    NETWORK_ERROR = "network_error"
    TIMEOUT_ERROR = "timeout_error"
    ELEMENT_NOT_FOUND = "element_not_found"
    ELEMENT_NOT_VISIBLE = "element_not_visible"
    ELEMENT_NOT_CLICKABLE = "element_not_clickable"
    NAVIGATION_ERROR = "navigation_error"
    SCREENSHOT_ERROR = "screenshot_error"
    VALIDATION_ERROR = "validation_error"
    BROWSER_ERROR = "browser_error"
    UNKNOWN_ERROR = "unknown_error"


class Backoff(str, Enum):
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


RecoveryAction = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class RetryStrategy:
    """某类错误的重试策略"""
    max_attempts: int
    delay: int  # 基础延迟，毫秒
    backoff: Backoff = Backoff.FIXED
    recovery_actions: Tuple[RecoveryAction, ...] = ()


@dataclass(frozen=True)
class ErrorContext:
    step: Optional[ActionStep] = None
    step_number: Optional[int] = None
    selector: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class ClassifiedError:
    """带分类和重试策略的错误，每次失败新建，不可修改"""
    type: ErrorType
    original_error: str
    message: str
    is_retryable: bool
    strategy: RetryStrategy
    context: ErrorContext = field(default_factory=ErrorContext)


# ──────────────────────────────────────────────
# 日志与执行结果
# ──────────────────────────────────────────────

@dataclass
class LogEntry:
    """单条日志，追加顺序即时间顺序"""
    timestamp: datetime
    level: int
    category: str
    message: str
    data: Any = None
    step: Optional[int] = None
    duration: Optional[int] = None  # 毫秒
    screenshot: Optional[str] = None


@dataclass(frozen=True)
class ScreenshotInfo:
    filename: str
    path: str
    timestamp: datetime
    step: Optional[int]
    type: str  # success|error|debug
    size: int  # 字节


@dataclass(frozen=True)
class ExecutionLog:
    """单步执行记录"""
    step: int
    action: str
    status: str  # success|error|warning
    message: str
    timestamp: datetime
    duration: Optional[int] = None


@dataclass(frozen=True)
class ErrorAnalysis:
    errors: Tuple[ClassifiedError, ...]
    report: str


@dataclass(frozen=True)
class ExecutionResult:
    """一次脚本执行的结果"""
    success: bool
    steps_executed: int
    total_steps: int
    execution_time: int  # 毫秒
    screenshots: Tuple[str, ...] = ()
    error: Optional[str] = None
    logs: Tuple[ExecutionLog, ...] = ()
    error_analysis: Optional[ErrorAnalysis] = None
    session_id: Optional[str] = None
    log_file_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "stepsExecuted": self.steps_executed,
            "totalSteps": self.total_steps,
            "executionTime": self.execution_time,
            "screenshots": list(self.screenshots),
            "logs": [
                {
                    "step": log.step,
                    "action": log.action,
                    "status": log.status,
                    "message": log.message,
                    "timestamp": log.timestamp.isoformat(),
                    "duration": log.duration,
                }
                for log in self.logs
            ],
            "sessionId": self.session_id,
            "logFilePath": self.log_file_path,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.error_analysis is not None:
            data["errorAnalysis"] = {
                "errors": [
                    {
                        "type": err.type.value,
                        "message": err.message,
                        "originalError": err.original_error,
                        "isRetryable": err.is_retryable,
                        "stepNumber": err.context.step_number,
                    }
                    for err in self.error_analysis.errors
                ],
                "report": self.error_analysis.report,
            }
        return data


# ──────────────────────────────────────────────
# 浏览器会话
# ──────────────────────────────────────────────

@dataclass
class BrowserSession:
    """浏览器句柄，由一次执行独占"""
    page: Any = None
    context: Any = None
    browser: Any = None
    playwright: Any = None  # Playwright 驱动本身，关闭时最后停止
