"""
Tool Filters

工具输入过滤器：把每个工具的拒绝规则（硬编码 + 用户配置）编译为
不可变的匹配器。

合并规则：
1. 硬编码基线总是生效，用户配置只能追加限制
2. 子串检查（大小写不敏感）先于正则检查
3. 没有任何规则的过滤器即 permissive，总是放行
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from pydantic import BaseModel, Field

from hostguard.agent.security.errors import FilterConfigError, FilterDenied


class ToolFilter(BaseModel):
    """单个工具的过滤配置"""
    # 拒绝列表（最高优先级）
    deny_substrings: List[str] = Field(default_factory=list)
    deny_patterns: List[str] = Field(default_factory=list)

    # 允许列表（非空时，未命中的输入一律拒绝）
    allow_substrings: List[str] = Field(default_factory=list)
    allow_patterns: List[str] = Field(default_factory=list)


def _compile_patterns(patterns: Iterable[str]) -> Tuple[Pattern[str], ...]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise FilterConfigError(f"Invalid filter pattern {pattern!r}: {e}") from e
    return tuple(compiled)


def _dedupe(items: Iterable) -> Tuple:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return tuple(result)


@dataclass(frozen=True)
class CompiledToolFilter:
    """
    编译后的工具过滤器

    frozen dataclass，可在并发工具调用之间只读共享。
    """
    deny_substrings: Tuple[str, ...] = ()
    deny_patterns: Tuple[Pattern[str], ...] = ()
    allow_substrings: Tuple[str, ...] = ()
    allow_patterns: Tuple[Pattern[str], ...] = ()

    @classmethod
    def compile(cls, config: ToolFilter) -> "CompiledToolFilter":
        """
        编译用户配置

        Args:
            config: 工具过滤配置

        Returns:
            CompiledToolFilter 实例

        Raises:
            FilterConfigError: 任一正则无法编译
        """
        return cls(
            deny_substrings=_dedupe(s.lower() for s in config.deny_substrings if s),
            deny_patterns=_compile_patterns(config.deny_patterns),
            allow_substrings=_dedupe(s.lower() for s in config.allow_substrings if s),
            allow_patterns=_compile_patterns(config.allow_patterns),
        )

    @classmethod
    def permissive(cls) -> "CompiledToolFilter":
        """没有任何规则的过滤器"""
        return cls()

    @property
    def is_permissive(self) -> bool:
        return not (
            self.deny_substrings or self.deny_patterns
            or self.allow_substrings or self.allow_patterns
        )

    def merge_hardcoded(
        self,
        baseline_substrings: Iterable[str],
        baseline_patterns: Iterable[str],
    ) -> "CompiledToolFilter":
        """
        合并硬编码基线

        返回新的过滤器，执行两套规则的并集。

        Args:
            baseline_substrings: 基线子串
            baseline_patterns: 基线正则

        Returns:
            合并后的过滤器
        """
        substrings = _dedupe(
            list(self.deny_substrings) + [s.lower() for s in baseline_substrings]
        )
        existing = {p.pattern for p in self.deny_patterns}
        extra = _compile_patterns(p for p in baseline_patterns if p not in existing)
        return CompiledToolFilter(
            deny_substrings=substrings,
            deny_patterns=self.deny_patterns + extra,
            allow_substrings=self.allow_substrings,
            allow_patterns=self.allow_patterns,
        )

    def check(self, value: str, tool_name: str, field_name: str) -> None:
        """
        检查输入值

        Args:
            value: 待检查的字符串（命令、解析后的路径或 URL）
            tool_name: 工具名称
            field_name: 字段名称

        Raises:
            FilterDenied: 命中拒绝规则，或未命中允许规则
        """
        lowered = value.lower()

        for substring in self.deny_substrings:
            if substring in lowered:
                raise FilterDenied(tool_name, field_name, substring, "substring")

        for pattern in self.deny_patterns:
            if pattern.search(value):
                raise FilterDenied(tool_name, field_name, pattern.pattern, "pattern")

        if self.allow_substrings or self.allow_patterns:
            allowed = any(s in lowered for s in self.allow_substrings) or any(
                p.search(value) for p in self.allow_patterns
            )
            if not allowed:
                raise FilterDenied(tool_name, field_name, "<not in allow list>", "allow")


def compile_filter_for(
    filters: Dict[str, ToolFilter],
    tool_name: str,
) -> CompiledToolFilter:
    """
    查找并编译指定工具的过滤器

    未配置时返回 permissive 过滤器。
    """
    config: Optional[ToolFilter] = filters.get(tool_name)
    if config is None:
        return CompiledToolFilter.permissive()
    return CompiledToolFilter.compile(config)
