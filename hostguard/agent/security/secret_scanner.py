"""
Secret Scanner

检测并脱敏工具输出中形似凭据的子串。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Pattern, Tuple


@dataclass(frozen=True)
class SecretMatch:
    """一次命中（偏移量相对于该模式执行时的字符串）"""
    kind: str
    start: int
    end: int


# 按优先级排列；Anthropic 必须在 OpenAI 之前
SECRET_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = tuple(
    (kind, re.compile(pattern))
    for kind, pattern in (
        ("AWS Access Key", r"AKIA[0-9A-Z]{16}"),
        ("GitHub PAT", r"gh[pous]_[A-Za-z0-9_]{36,255}"),
        ("Private Key", r"-----BEGIN[A-Z ]*PRIVATE KEY-----"),
        ("Anthropic API Key", r"sk-ant-[A-Za-z0-9\-_]{20,}"),
        ("OpenAI API Key", r"sk-[A-Za-z0-9]{20,}"),
    )
)

# 合并后的快速预检
_ANY_SECRET = re.compile("|".join(f"(?:{p.pattern})" for _, p in SECRET_PATTERNS))


def redaction_marker(kind: str) -> str:
    return f"[REDACTED:{kind}]"


def contains_secrets(text: str) -> bool:
    """文本中是否存在任一凭据模式"""
    return _ANY_SECRET.search(text) is not None


def redact_secrets(text: str) -> Tuple[str, List[SecretMatch]]:
    """
    扫描并脱敏

    按优先级依次处理每个在原文中出现过的模式：在当前字符串上找出全部命中，
    从右向左替换为 [REDACTED:<kind>]。先执行的模式替换掉的内容，
    后续模式不会再看到。

    Args:
        text: 原始文本

    Returns:
        (脱敏后的文本, 命中列表)
    """
    if not contains_secrets(text):
        return text, []

    applicable = [(kind, pattern) for kind, pattern in SECRET_PATTERNS if pattern.search(text)]

    result = text
    matches: List[SecretMatch] = []
    for kind, pattern in applicable:
        found = [(m.start(), m.end()) for m in pattern.finditer(result)]
        marker = redaction_marker(kind)
        for start, end in reversed(found):
            matches.append(SecretMatch(kind=kind, start=start, end=end))
            result = result[:start] + marker + result[end:]

    return result, matches
