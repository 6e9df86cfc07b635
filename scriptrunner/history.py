"""执行记录模块：保存本次执行的逐步记录"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from .models import ExecutionLog

_STATUS_ICONS = {"success": "✓", "error": "✗", "warning": "⚠"}


def format_records(records: Iterable[ExecutionLog]) -> List[str]:
    """每条记录一行；step=0 的记录不带步骤号"""
    lines = []
    for rec in records:
        timestamp = rec.timestamp.strftime("%H:%M:%S")
        icon = _STATUS_ICONS.get(rec.status, "⚠")
        duration = f" ({rec.duration}ms)" if rec.duration is not None else ""
        if rec.step == 0:
            lines.append(f"{timestamp} {icon} {rec.message}{duration}")
        else:
            lines.append(f"{timestamp} {icon} Step {rec.step}: {rec.message}{duration}")
    return lines


class ExecutionHistory:
    """执行记录：保存逐步结果，最终成为 ExecutionResult.logs"""

    def __init__(self):
        self.records: List[ExecutionLog] = []

    def record(
        self,
        step: int,
        action: str,
        status: str,
        message: str,
        duration: Optional[int] = None,
    ) -> ExecutionLog:
        """记录单步结果（step=0 表示非步骤事件，如校验、浏览器初始化）"""
        entry = ExecutionLog(
            step=step,
            action=action,
            status=status,
            message=message,
            timestamp=datetime.now(timezone.utc),
            duration=duration,
        )
        self.records.append(entry)
        return entry

    def snapshot(self) -> Tuple[ExecutionLog, ...]:
        return tuple(self.records)

    def format_history(self, last_n: Optional[int] = None) -> str:
        """格式化执行记录"""
        if not self.records:
            return "(no records)"
        records = self.records if last_n is None else self.records[-last_n:]
        return "\n".join(format_records(records))
