"""日志模块：一次执行会话的结构化日志

每条日志同时写入：
- 内存缓冲（整个会话期间保留）
- 控制台（图标 + 颜色 + 时间）
- 会话日志文件（单写者队列异步追加，保证顺序）
"""

import asyncio
import csv
import io
import json
import os
import sys
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from .config import AutoConfig
from .models import LogEntry, ScreenshotInfo


class LogLevel(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


_LEVEL_NAMES = {
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "warn": LogLevel.WARN,
    "error": LogLevel.ERROR,
}

_ICONS = {
    LogLevel.DEBUG: "🔍",
    LogLevel.INFO: "📝",
    LogLevel.WARN: "⚠️",
    LogLevel.ERROR: "❌",
}

_COLORS = {
    LogLevel.DEBUG: "\x1b[36m",
    LogLevel.INFO: "\x1b[37m",
    LogLevel.WARN: "\x1b[33m",
    LogLevel.ERROR: "\x1b[31m",
}

_RESET = "\x1b[0m"


class LogExportError(RuntimeError):
    """导出日志失败"""


@dataclass
class LoggerConfig:
    level: LogLevel = LogLevel.INFO
    output_dir: Path = Path("./logs")
    enable_file_logging: bool = True
    enable_console_logging: bool = True
    format: str = "structured"  # structured|json|text
    max_file_size_mb: float = 50
    max_files: int = 10
    include_stack_trace: bool = False

    @classmethod
    def from_config(cls, config: AutoConfig) -> "LoggerConfig":
        logging = config.logging
        return cls(
            level=_LEVEL_NAMES.get(str(logging.level).lower(), LogLevel.INFO),
            output_dir=Path(logging.output_dir),
            format=logging.format,
            max_file_size_mb=logging.max_file_size_mb,
            max_files=logging.max_files,
            include_stack_trace=str(logging.level).lower() == "debug",
        )


@dataclass
class SessionSummary:
    session_id: str
    total_logs: int
    logs_by_level: Dict[str, int]
    screenshots: List[ScreenshotInfo] = field(default_factory=list)
    duration: int = 0  # 毫秒
    log_file_path: str = ""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp_slug() -> str:
    return _now().strftime("%Y-%m-%dT%H-%M-%S-%f")


def generate_session_id() -> str:
    """时间戳 + 随机后缀"""
    return f"{_timestamp_slug()}-{uuid.uuid4().hex[:6]}"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return str(value)


def _dumps(value: Any, **kwargs) -> str:
    return json.dumps(value, default=_json_default, ensure_ascii=False, **kwargs)


def _safe_dumps(value: Any, **kwargs) -> str:
    """无法序列化的数据（非字符串键、循环引用）退回 repr"""
    try:
        return _dumps(value, **kwargs)
    except (TypeError, ValueError):
        return repr(value)


def _json_safe(value: Any) -> Any:
    try:
        _dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


def entry_to_dict(entry: LogEntry) -> Dict[str, Any]:
    return {
        "timestamp": entry.timestamp.isoformat(),
        "level": LogLevel(entry.level).name,
        "category": entry.category,
        "message": entry.message,
        "data": _json_safe(entry.data),
        "step": entry.step,
        "duration": entry.duration,
        "screenshot": entry.screenshot,
    }


class SessionLogger:
    """一次执行会话的日志器，由执行引擎持有"""

    def __init__(self, config: AutoConfig, logger_config: Optional[LoggerConfig] = None):
        self.config = logger_config or LoggerConfig.from_config(config)
        self.session_id = generate_session_id()
        self.output_dir = Path(self.config.output_dir)
        self.screenshot_dir = self.output_dir / "screenshots"
        self.log_file_path = self.output_dir / f"execution-{self.session_id}.log"
        self.screenshots: List[ScreenshotInfo] = []
        self.closed = False
        self._buffer: List[LogEntry] = []
        self._pending: Deque[str] = deque()
        self._writer: Optional[asyncio.Task] = None
        self._ensure_output_dir()

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._buffer)

    def _ensure_output_dir(self) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"❌ Failed to create output directory: {e}", file=sys.stderr)

    # ── 各级别日志 ────────────────────────────────

    def debug(self, message: str, data: Any = None, step: Optional[int] = None) -> None:
        self._log(LogLevel.DEBUG, "debug", message, data, step)

    def info(self, message: str, data: Any = None, step: Optional[int] = None) -> None:
        self._log(LogLevel.INFO, "info", message, data, step)

    def warn(self, message: str, data: Any = None, step: Optional[int] = None) -> None:
        self._log(LogLevel.WARN, "warn", message, data, step)

    def error(self, message: str, data: Any = None, step: Optional[int] = None) -> None:
        self._log(LogLevel.ERROR, "error", message, data, step)

    def step(
        self,
        step_number: int,
        action: str,
        message: str,
        duration: Optional[int] = None,
        success: bool = True,
    ) -> None:
        level = LogLevel.INFO if success else LogLevel.ERROR
        data = {"stepNumber": step_number, "action": action, "success": success}
        self._log(level, f"step-{action}", message, data, step_number, duration)

    def browser(self, action: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        payload = {"action": action}
        if data:
            payload.update(data)
        self._log(LogLevel.INFO, "browser", message, payload)

    def validation(self, message: str, errors: Optional[list] = None, warnings: Optional[List[str]] = None) -> None:
        if errors:
            level = LogLevel.ERROR
        elif warnings:
            level = LogLevel.WARN
        else:
            level = LogLevel.INFO
        self._log(level, "validation", message, {"errors": errors or [], "warnings": warnings or []})

    async def screenshot(self, path: str, step: Optional[int] = None, type: str = "success") -> Optional[ScreenshotInfo]:
        """登记一张截图；读取文件信息失败只记录错误，不抛出"""
        try:
            stats = await asyncio.to_thread(os.stat, path)
        except OSError as e:
            self.error("Failed to process screenshot metadata", {"error": str(e), "path": str(path)})
            return None

        info = ScreenshotInfo(
            filename=Path(path).name,
            path=str(path),
            timestamp=_now(),
            step=step,
            type=type,
            size=stats.st_size,
        )
        self.screenshots.append(info)
        self._log(LogLevel.INFO, "screenshot", f"Screenshot captured: {info.filename}", info, step, screenshot=str(path))
        return info

    # ── 核心写入 ──────────────────────────────────

    def _log(
        self,
        level: LogLevel,
        category: str,
        message: str,
        data: Any = None,
        step: Optional[int] = None,
        duration: Optional[int] = None,
        screenshot: Optional[str] = None,
    ) -> None:
        if level < self.config.level:
            return

        entry = LogEntry(
            timestamp=_now(),
            level=level,
            category=category,
            message=message,
            data=data,
            step=step,
            duration=duration,
            screenshot=screenshot,
        )
        self._buffer.append(entry)

        if self.config.enable_console_logging:
            self._write_console(entry)
        if self.config.enable_file_logging:
            self._write_file(entry)

    def _write_console(self, entry: LogEntry) -> None:
        level = LogLevel(entry.level)
        color = _COLORS[level]
        timestamp = entry.timestamp.strftime("%H:%M:%S")
        step_info = f" [Step {entry.step}]" if entry.step else ""
        duration = f" ({entry.duration}ms)" if entry.duration is not None else ""
        line = f"{color}{timestamp} {_ICONS[level]} [{level.name}]{step_info} {entry.message}{duration}{_RESET}"

        stream = sys.stderr if level >= LogLevel.WARN else sys.stdout
        print(line, file=stream)

        show_data = (
            (level is LogLevel.ERROR and self.config.include_stack_trace)
            or level is LogLevel.DEBUG
        )
        if entry.data is not None and show_data:
            print(f"{color}{_safe_dumps(entry.data, indent=2)}{_RESET}", file=stream)

    def _format_file_entry(self, entry: LogEntry) -> str:
        level_name = LogLevel(entry.level).name
        if self.config.format == "json":
            return _dumps(entry_to_dict(entry)) + "\n"
        if self.config.format == "structured":
            step_info = f" [Step {entry.step}]" if entry.step else ""
            duration = f" ({entry.duration}ms)" if entry.duration is not None else ""
            line = f"{entry.timestamp.isoformat()} {level_name:<5} [{entry.category}]{step_info} {entry.message}{duration}\n"
            if entry.data is not None:
                line += f"  Data: {_safe_dumps(entry.data)}\n"
            return line
        return f"{entry.timestamp.isoformat()} [{level_name}] {entry.message}\n"

    def _write_file(self, entry: LogEntry) -> None:
        """投递到写队列；调用方不等待写入完成"""
        line = self._format_file_entry(entry)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # 没有事件循环时直接同步写
            self._append(line)
            return

        self._pending.append(line)
        if self._writer is None or self._writer.done():
            self._writer = loop.create_task(self._drain())

    async def _drain(self) -> None:
        # 每个会话只有一个写者，追加顺序即投递顺序
        while self._pending:
            chunk = "".join(self._pending)
            self._pending.clear()
            await asyncio.to_thread(self._append, chunk)

    def _append(self, text: str) -> None:
        try:
            with open(self.log_file_path, "a", encoding="utf-8") as fh:
                fh.write(text)
        except OSError as e:
            # 只打到控制台，避免日志写日志的死循环
            print(f"❌ Failed to write to log file: {e}", file=sys.stderr)
            return
        self._rotate_if_needed()

    def _rotate_if_needed(self) -> None:
        try:
            size = self.log_file_path.stat().st_size
            if size <= self.config.max_file_size_mb * 1024 * 1024:
                return
            rotated = self.log_file_path.with_name(f"{self.log_file_path.stem}-{_timestamp_slug()}.log")
            # 先改名，下次追加时重新创建原文件
            os.replace(self.log_file_path, rotated)
            self._prune_old_logs()
        except OSError:
            return

    def _prune_old_logs(self) -> None:
        files = []
        for path in self.output_dir.glob("execution-*.log"):
            try:
                files.append((path.stat().st_mtime, path))
            except OSError:
                continue
        files.sort(key=lambda item: item[0], reverse=True)
        for _, path in files[self.config.max_files:]:
            try:
                path.unlink()
            except OSError:
                continue

    async def flush(self) -> None:
        """等待所有已投递的文件写入完成"""
        while self._writer is not None and not self._writer.done():
            await self._writer

    # ── 查询与导出 ────────────────────────────────

    def get_session_summary(self) -> SessionSummary:
        logs_by_level: Dict[str, int] = {}
        for entry in self._buffer:
            name = LogLevel(entry.level).name
            logs_by_level[name] = logs_by_level.get(name, 0) + 1

        duration = 0
        if len(self._buffer) >= 2:
            delta = self._buffer[-1].timestamp - self._buffer[0].timestamp
            duration = int(delta.total_seconds() * 1000)

        return SessionSummary(
            session_id=self.session_id,
            total_logs=len(self._buffer),
            logs_by_level=logs_by_level,
            screenshots=list(self.screenshots),
            duration=duration,
            log_file_path=str(self.log_file_path),
        )

    def get_execution_timeline(self) -> List[LogEntry]:
        timeline = [
            entry for entry in self._buffer
            if entry.category.startswith("step-") or entry.category == "browser"
        ]
        return sorted(timeline, key=lambda entry: entry.timestamp)

    async def export_logs(self, format: str = "json") -> Path:
        if format not in ("json", "csv"):
            raise ValueError(f"Unsupported export format: {format}")

        export_path = self.output_dir / f"execution-{self.session_id}-export.{format}"
        if format == "json":
            content = _dumps(
                {
                    "sessionId": self.session_id,
                    "summary": self.get_session_summary(),
                    "logs": [entry_to_dict(entry) for entry in self._buffer],
                    "timeline": [entry_to_dict(entry) for entry in self.get_execution_timeline()],
                },
                indent=2,
            )
        else:
            content = self._to_csv()

        try:
            await asyncio.to_thread(export_path.write_text, content, encoding="utf-8")
        except OSError as e:
            raise LogExportError(f"Failed to export logs: {e}") from e
        return export_path

    def _to_csv(self) -> str:
        out = io.StringIO()
        out.write("timestamp,level,category,step,message,duration\n")
        # QUOTE_ALL：每个字段加引号，内部引号加倍转义
        writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
        for entry in self._buffer:
            writer.writerow([
                entry.timestamp.isoformat(),
                LogLevel(entry.level).name,
                entry.category,
                entry.step if entry.step is not None else "",
                entry.message,
                entry.duration if entry.duration is not None else "",
            ])
        return out.getvalue()

    async def cleanup(self) -> None:
        """写入会话结束记录并等待文件写完；之后仍可写，但不再有自动收尾"""
        if self.config.enable_file_logging and self._buffer:
            summary = self.get_session_summary()
            self._write_file(LogEntry(
                timestamp=_now(),
                level=LogLevel.INFO,
                category="session",
                message="Session completed",
                data=summary,
            ))
        await self.flush()
        self.closed = True


def format_execution_summary(logger: SessionLogger) -> str:
    summary = logger.get_session_summary()
    lines = ["📊 EXECUTION SUMMARY", "=" * 40]
    lines.append(f"Session ID: {summary.session_id}")
    lines.append(f"Duration: {round(summary.duration / 1000)}s")
    lines.append(f"Total Logs: {summary.total_logs}")
    lines.append("")

    lines.append("Logs by Level:")
    for level_name, count in summary.logs_by_level.items():
        lines.append(f"  {_ICONS[LogLevel[level_name]]} {level_name}: {count}")

    if summary.screenshots:
        lines.append("")
        lines.append(f"Screenshots: {len(summary.screenshots)}")
        for shot in summary.screenshots:
            icon = "❌" if shot.type == "error" else "📸" if shot.type == "success" else "🔍"
            step_info = f" [Step {shot.step}]" if shot.step else ""
            lines.append(f"  {icon}{step_info} {shot.filename} ({round(shot.size / 1024)}KB)")

    lines.append("")
    lines.append(f"Log file: {summary.log_file_path}")
    lines.append("=" * 40)
    return "\n".join(lines)
