"""
安全错误类型

工具管道中每一种拒绝或失败都对应一个异常类。
管道遇到第一个异常即停止；ToolExecutor 负责把异常转换为 ToolResult。
"""

from __future__ import annotations

from typing import Optional


class HostGuardError(Exception):
    """所有 HostGuard 错误的基类"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FilterConfigError(HostGuardError):
    """过滤器配置无法编译（启动期错误）"""


class InvalidArguments(HostGuardError):
    """工具参数缺失、类型错误或 JSON 无法解析"""


class FilterDenied(HostGuardError):
    """命中了硬编码或用户配置的过滤规则"""

    def __init__(self, tool_name: str, field_name: str, rule: str, kind: str = "substring"):
        self.tool_name = tool_name
        self.field_name = field_name
        self.rule = rule
        self.kind = kind
        super().__init__(
            f"Denied by {kind} filter '{rule}' on {tool_name}:{field_name}"
        )


class PathDenied(HostGuardError):
    """路径不在允许目录内"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path denied: {path} is outside allowed directories")


class ProtectedFileDenied(HostGuardError):
    """尝试修改受保护文件"""

    def __init__(self, message: str, targets: Optional[list] = None):
        super().__init__(message)
        self.targets = targets or []


class OldStringNotFound(HostGuardError):
    """edit_file 的 old_string 在文件中不存在"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"old_string not found in file: {path}")


class CommandTimeout(HostGuardError):
    """bash 命令超时（子进程已被终止并回收）"""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Command timed out after {timeout_ms}ms")


class TamperDetected(HostGuardError):
    """安全策略完整性校验失败"""


class ToolIoError(HostGuardError):
    """底层文件系统或进程错误"""


class NetworkError(HostGuardError):
    """HTTP 请求失败"""


# 策略拒绝类错误（审计相关，不视为工具故障）
DENIAL_ERRORS = (FilterDenied, PathDenied, ProtectedFileDenied, TamperDetected)
