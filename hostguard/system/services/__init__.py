"""
系统服务

日志、配置中心和 API 令牌。
"""

from hostguard.system.services.logger import (
    Layer,
    LoggerMixin,
    get_logger,
    setup_logging,
    trace_context,
)

__all__ = [
    "Layer",
    "LoggerMixin",
    "get_logger",
    "setup_logging",
    "trace_context",
]
