"""
Agent Security

Agent 安全系统，包括：
- Tool Filters: 工具输入过滤（硬编码基线 + 用户配置）
- Path Scope: 路径解析与允许目录检查
- Policy: 受保护文件、审计日志、策略签名校验
- Secret Scanner: 输出中的密钥脱敏
"""

from hostguard.agent.security.errors import (
    DENIAL_ERRORS,
    CommandTimeout,
    FilterConfigError,
    FilterDenied,
    HostGuardError,
    InvalidArguments,
    NetworkError,
    OldStringNotFound,
    PathDenied,
    ProtectedFileDenied,
    TamperDetected,
    ToolIoError,
)
from hostguard.agent.security.tool_filters import (
    CompiledToolFilter,
    ToolFilter,
)
from hostguard.agent.security.path_scope import (
    check_path_allowed,
    resolve_real_path,
)
from hostguard.agent.security.policy import (
    AuditAction,
    AuditEntry,
    PolicyVerification,
    is_workspace_file_protected,
    load_and_verify_policy,
)
from hostguard.agent.security.secret_scanner import (
    SecretMatch,
    redact_secrets,
)

__all__ = [
    # Errors
    "HostGuardError",
    "FilterConfigError",
    "InvalidArguments",
    "FilterDenied",
    "PathDenied",
    "ProtectedFileDenied",
    "OldStringNotFound",
    "CommandTimeout",
    "TamperDetected",
    "ToolIoError",
    "NetworkError",
    "DENIAL_ERRORS",
    # Filters
    "ToolFilter",
    "CompiledToolFilter",
    # Path Scope
    "resolve_real_path",
    "check_path_allowed",
    # Policy
    "AuditAction",
    "AuditEntry",
    "PolicyVerification",
    "is_workspace_file_protected",
    "load_and_verify_policy",
    # Secret Scanner
    "SecretMatch",
    "redact_secrets",
]
