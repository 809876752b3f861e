"""
硬编码过滤规则

编译进程序的拒绝基线。配置只能在此基础上追加规则，永远不能移除。
"""

from __future__ import annotations

from typing import Tuple

from hostguard.agent.security.policy import (
    AUDIT_LOG_FILENAME,
    DEVICE_KEY_FILENAME,
    MANIFEST_FILENAME,
)

# bash 拒绝子串（大小写不敏感）
BASH_DENY_SUBSTRINGS: Tuple[str, ...] = (
    DEVICE_KEY_FILENAME,
    AUDIT_LOG_FILENAME,
    MANIFEST_FILENAME,
    "rm -rf /",
    "mkfs",
    ":(){ :|:& };:",  # fork bomb
    "chmod 777",
)

# bash 拒绝模式（正则）
BASH_DENY_PATTERNS: Tuple[str, ...] = (
    r"\bsudo\b",
    r"curl\s.*\|\s*sh",
    r"wget\s.*\|\s*sh",
    r"curl\s.*\|\s*bash",
    r"wget\s.*\|\s*bash",
    r"curl\s.*\|\s*python",
)

# web_fetch 拒绝子串，仅作快速失败
# 权威的 SSRF 检查（连接前解析 DNS）不在本层
WEB_FETCH_DENY_SUBSTRINGS: Tuple[str, ...] = (
    "file://",
    "://localhost",
    "://0.0.0.0",
    "://169.254.169.254",
    "://[::1]",
)

# web_fetch 拒绝模式，只匹配 URL 的 authority 部分，避免误伤查询串
WEB_FETCH_DENY_PATTERNS: Tuple[str, ...] = (
    r"(?i)^https?://localhost(?::|/|$)",
    r"(?i)^https?://127(?:\.\d{1,3}){3}(?::|/|$)",
    r"(?i)^https?://0\.0\.0\.0(?::|/|$)",
    r"(?i)^https?://169\.254\.169\.254(?::|/|$)",
    r"(?i)^https?://\[(::1|0:0:0:0:0:0:0:1)\](?::|/|$)",
)
