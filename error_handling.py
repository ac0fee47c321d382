# error_handling.py
"""
統一錯誤處理系統
為穩定流體模擬提供異常分類、錯誤記錄與日誌輸出

錯誤分類:
- ConfigurationError: 網格尺寸非正值、階段間場形狀不一致 (啟動前即終止)
- InvalidStateError: 未就緒前或釋放後仍嘗試推進模擬
- NumericAnomaly: 階段產生NaN/Inf (視為缺陷，記錄後丟棄整個時間步)

所有階段皆為確定性運算，因此不提供重試或自動恢復策略。
"""

import time
import json
import logging
import traceback
from enum import Enum
from typing import Dict, List, Callable, Optional
from dataclasses import dataclass

logger = logging.getLogger('StableFluid.ErrorHandler')

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """設置日誌系統 (僅由CLI入口呼叫，匯入模組不會產生日誌檔)"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


class ErrorSeverity(Enum):
    """錯誤嚴重程度"""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    FATAL = "fatal"


class ErrorCategory(Enum):
    """錯誤類別"""
    NUMERICAL = "numerical"
    CONFIGURATION = "configuration"
    STATE = "state"


# 自定義異常類
class FluidSimulationError(Exception):
    """流體模擬基礎異常類"""
    def __init__(self, message: str, category: ErrorCategory,
                 severity: ErrorSeverity, context: Optional[Dict] = None):
        super().__init__(message)
        self.category = category
        self.severity = severity
        self.context = context or {}
        self.timestamp = time.time()


class ConfigurationError(FluidSimulationError):
    """配置錯誤 - 網格尺寸非法或場形狀不匹配"""
    def __init__(self, message: str, context: Optional[Dict] = None):
        super().__init__(message, ErrorCategory.CONFIGURATION, ErrorSeverity.FATAL, context)


class InvalidStateError(FluidSimulationError):
    """狀態錯誤 - 在錯誤的生命週期階段呼叫操作"""
    def __init__(self, message: str, context: Optional[Dict] = None):
        super().__init__(message, ErrorCategory.STATE, ErrorSeverity.FATAL, context)


class NumericAnomaly(FluidSimulationError):
    """數值異常 - 場中出現NaN或Inf"""
    def __init__(self, message: str, context: Optional[Dict] = None):
        super().__init__(message, ErrorCategory.NUMERICAL, ErrorSeverity.CRITICAL, context)


@dataclass
class ErrorRecord:
    """錯誤記錄"""
    timestamp: float
    error_type: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    context: Dict
    stack_trace: str


_LOG_LEVELS = {
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
    ErrorSeverity.FATAL: logging.FATAL,
}


class GlobalErrorHandler:
    """全局錯誤處理器 - 記錄、回調與統計"""

    def __init__(self):
        self.error_count = 0
        self.error_log: List[ErrorRecord] = []
        self.error_callbacks: Dict[ErrorCategory, List[Callable]] = {
            category: [] for category in ErrorCategory
        }
        logger.debug("✅ 全局錯誤處理器初始化完成")

    def register_error_callback(self, category: ErrorCategory, callback: Callable):
        """註冊錯誤回調函數"""
        self.error_callbacks[category].append(callback)

    def handle_error(self, error: FluidSimulationError, context: Optional[Dict] = None) -> ErrorRecord:
        """
        統一錯誤處理入口

        記錄錯誤並觸發回調，不嘗試恢復。呼叫端負責丟棄失敗的時間步。
        """
        self.error_count += 1

        record = ErrorRecord(
            timestamp=time.time(),
            error_type=type(error).__name__,
            message=str(error),
            category=error.category,
            severity=error.severity,
            context={**(error.context or {}), **(context or {})},
            stack_trace=traceback.format_exc()
        )
        self.error_log.append(record)

        logger.log(_LOG_LEVELS[error.severity], f"{error.category.value.upper()}: {error}")

        for callback in self.error_callbacks[error.category]:
            try:
                callback(error, record)
            except Exception as e:
                logger.error(f"錯誤回調執行失敗: {e}")

        return record

    def get_error_statistics(self) -> Dict:
        """獲取錯誤統計信息"""
        if not self.error_log:
            return {"total_errors": 0}

        stats = {
            "total_errors": len(self.error_log),
            "by_category": {},
            "by_severity": {},
            "recent_errors": []
        }

        for category in ErrorCategory:
            count = len([e for e in self.error_log if e.category == category])
            if count > 0:
                stats["by_category"][category.value] = count

        for severity in ErrorSeverity:
            count = len([e for e in self.error_log if e.severity == severity])
            if count > 0:
                stats["by_severity"][severity.value] = count

        recent_errors = sorted(self.error_log, key=lambda x: x.timestamp, reverse=True)[:5]
        stats["recent_errors"] = [
            {
                "type": e.error_type,
                "message": e.message,
                "time": time.ctime(e.timestamp)
            }
            for e in recent_errors
        ]

        return stats

    def export_error_log(self, filename: Optional[str] = None) -> str:
        """導出錯誤日誌 (JSON)"""
        if filename is None:
            filename = f"fluid_error_log_{int(time.time())}.json"

        log_data = []
        for record in self.error_log:
            log_data.append({
                "timestamp": record.timestamp,
                "time_str": time.ctime(record.timestamp),
                "error_type": record.error_type,
                "message": record.message,
                "category": record.category.value,
                "severity": record.severity.value,
                # context可能含有numpy數值，轉成字串保證可序列化
                "context": {k: str(v) for k, v in record.context.items()},
            })

        with open(filename, 'w', encoding='utf-8') as f:
            json.dump(log_data, f, indent=2, ensure_ascii=False)

        logger.info(f"✅ 錯誤日誌已導出到: {filename}")
        return filename

    def clear_error_log(self):
        """清理錯誤日誌"""
        self.error_log.clear()
        self.error_count = 0


# 全局錯誤處理器實例
global_error_handler = GlobalErrorHandler()


def get_error_handler() -> GlobalErrorHandler:
    """獲取全局錯誤處理器"""
    return global_error_handler
