"""
日志服务

提供统一的日志输出，支持trace_id追踪、层级标识。
每次工具调用都在独立的追踪上下文中执行，trace_id 即 call_id。
"""

import contextvars
import logging
import sys
from dataclasses import dataclass
from typing import Dict, Optional

# 日志格式 - 增强版，包含trace_id、层级、组件
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(trace_id)s | %(layer)s | %(component)s | %(message)s"
LOG_FORMAT_SIMPLE = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 全局日志级别
_log_level = logging.INFO
_initialized = False

# 上下文变量 - 用于存储trace_id
_trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("trace_id", default="-")
_layer_var: contextvars.ContextVar[str] = contextvars.ContextVar("layer", default="-")
_component_var: contextvars.ContextVar[str] = contextvars.ContextVar("component", default="-")


class Layer:
    """系统层级常量"""
    AGENT = "Agent"
    SECURITY = "Security"
    TOOLS = "Tools"
    SYSTEM = "System"
    CLI = "CLI"


@dataclass
class LogContext:
    """日志上下文"""
    trace_id: str = "-"
    layer: str = "-"
    component: str = "-"

    def to_dict(self) -> Dict[str, str]:
        return {
            "trace_id": self.trace_id,
            "layer": self.layer,
            "component": self.component,
        }


class TraceIdFilter(logging.Filter):
    """添加trace_id到日志记录的过滤器"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _trace_id_var.get()
        record.layer = _layer_var.get()
        record.component = _component_var.get()
        return True


def get_trace_context() -> LogContext:
    """获取当前上下文的追踪信息"""
    return LogContext(
        trace_id=_trace_id_var.get(),
        layer=_layer_var.get(),
        component=_component_var.get(),
    )


class TraceContextManager:
    """追踪上下文管理器"""

    def __init__(
        self,
        trace_id: Optional[str] = None,
        layer: Optional[str] = None,
        component: Optional[str] = None,
    ):
        self.trace_id = trace_id
        self.layer = layer
        self.component = component
        self._tokens = []

    def __enter__(self) -> "TraceContextManager":
        if self.trace_id is not None:
            self._tokens.append((_trace_id_var, _trace_id_var.set(self.trace_id)))
        if self.layer is not None:
            self._tokens.append((_layer_var, _layer_var.set(self.layer)))
        if self.component is not None:
            self._tokens.append((_component_var, _component_var.set(self.component)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        # 逆序恢复旧值
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


def trace_context(
    trace_id: Optional[str] = None,
    layer: Optional[str] = None,
    component: Optional[str] = None,
) -> TraceContextManager:
    """
    创建追踪上下文管理器

    用法:
        with trace_context(trace_id=call.call_id, layer=Layer.AGENT, component="bash"):
            logger.info("执行中...")
    """
    return TraceContextManager(trace_id, layer, component)


def setup_logging(
    level: int = logging.INFO,
    use_enhanced_format: bool = True,
) -> None:
    """
    初始化日志系统

    Args:
        level: 日志级别
        use_enhanced_format: 是否使用增强格式（包含trace_id、层级等）
    """
    global _log_level, _initialized

    if _initialized:
        return

    _log_level = level

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # stderr 输出，避免污染 CLI 的 stdout
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    log_format = LOG_FORMAT if use_enhanced_format else LOG_FORMAT_SIMPLE
    console_handler.setFormatter(logging.Formatter(log_format, DATE_FORMAT))

    # 过滤器总是挂上，格式中没有这些字段时也无害
    console_handler.addFilter(TraceIdFilter())

    root_logger.addHandler(console_handler)
    _initialized = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    获取日志器

    不会隐式配置根日志器；由入口（CLI 或宿主程序）调用 setup_logging。

    Args:
        name: 日志器名称，通常使用 __name__

    Returns:
        Logger 实例
    """
    return logging.getLogger(name or "hostguard")


class LoggerMixin:
    """
    日志器混入类，为类提供 self.logger 属性
    """

    # 子类可以覆盖
    _log_layer: str = "-"

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, "_logger"):
            self._logger = get_logger(f"hostguard.{self.__class__.__name__}")
        return self._logger

    def log_warning(self, message: str, trace_id: Optional[str] = None) -> None:
        """带上下文的WARNING日志"""
        with trace_context(trace_id=trace_id, layer=self._log_layer, component=self.__class__.__name__):
            self.logger.warning(message)


class ToolsLoggerMixin(LoggerMixin):
    """工具层日志混入"""
    _log_layer = Layer.TOOLS
