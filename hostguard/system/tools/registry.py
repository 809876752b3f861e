"""
工具注册表

按固定顺序持有全部工具，启动时构建一次，之后只读。
"""

from __future__ import annotations

import json
from typing import Dict, Iterable, List, Optional

from hostguard.agent.security import hardcoded_filters
from hostguard.agent.security.path_scope import canonicalize_allowed_directories
from hostguard.agent.security.tool_filters import compile_filter_for
from hostguard.system.services.config_center import HostGuardConfig
from hostguard.system.services.logger import ToolsLoggerMixin, get_logger
from hostguard.system.tools.base import Tool
from hostguard.system.tools.builtin.file import EditFileTool, ReadFileTool, WriteFileTool
from hostguard.system.tools.builtin.http import WebFetchTool
from hostguard.system.tools.builtin.memory import (
    MemoryGetTool,
    MemoryIndex,
    MemorySearchTool,
    MemorySearchToolWithIndex,
)
from hostguard.system.tools.builtin.shell import BashTool

logger = get_logger(__name__)

DEFAULT_TOOL_NAMES = (
    "bash",
    "read_file",
    "write_file",
    "edit_file",
    "memory_search",
    "memory_get",
    "web_fetch",
)


class ToolRegistry(ToolsLoggerMixin):
    """
    工具注册表

    保持注册顺序；同名工具重复注册视为配置错误。
    """

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"工具已注册: {tool.name}")
        self._tools[tool.name] = tool
        self.logger.debug(f"注册工具: {tool.name}")

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def list(self) -> List[Tool]:
        return list(self._tools.values())

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def get_api_definitions(self, provider: str = "openai") -> List[dict]:
        """
        获取 LLM API 格式的工具定义列表

        Args:
            provider: "openai" 或 "anthropic"
        """
        schemas = [tool.schema() for tool in self._tools.values()]
        if provider == "anthropic":
            return [s.to_anthropic_format() for s in schemas]
        return [s.to_openai_format() for s in schemas]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def create_default_tools(
    config: HostGuardConfig,
    memory: Optional[MemoryIndex] = None,
) -> List[Tool]:
    """
    按配置创建默认工具集

    用户过滤器先编译，bash 和 web_fetch 再合并硬编码基线。
    允许目录在此处统一规范化。

    Args:
        config: HostGuard 配置
        memory: 记忆索引（可选，提供时 memory_search 走索引）

    Returns:
        固定顺序的工具列表

    Raises:
        FilterConfigError: 任一过滤正则无法编译
    """
    workspace = config.workspace_path()
    state_dir = config.state_dir()
    filters = config.tools.filters
    security = config.security

    bash_filter = compile_filter_for(filters, "bash").merge_hardcoded(
        hardcoded_filters.BASH_DENY_SUBSTRINGS,
        hardcoded_filters.BASH_DENY_PATTERNS,
    )
    web_fetch_filter = compile_filter_for(filters, "web_fetch").merge_hardcoded(
        hardcoded_filters.WEB_FETCH_DENY_SUBSTRINGS,
        hardcoded_filters.WEB_FETCH_DENY_PATTERNS,
    )

    allowed_directories = canonicalize_allowed_directories(security.allowed_directories)

    if memory is not None:
        memory_search: Tool = MemorySearchToolWithIndex(memory)
    else:
        memory_search = MemorySearchTool(workspace)

    tools = [
        BashTool(
            config.tools.bash_timeout_ms,
            state_dir,
            bash_filter,
            security.strict_policy,
            workspace,
            security.env_deny_patterns,
        ),
        ReadFileTool(compile_filter_for(filters, "read_file"), allowed_directories),
        WriteFileTool(state_dir, compile_filter_for(filters, "write_file"), allowed_directories),
        EditFileTool(state_dir, compile_filter_for(filters, "edit_file"), allowed_directories),
        memory_search,
        MemoryGetTool(workspace, allowed_directories),
        WebFetchTool(
            config.tools.web_fetch_max_bytes,
            web_fetch_filter,
            timeout=config.tools.web_fetch_timeout_s,
        ),
    ]
    logger.info(
        f"工具集已创建: {len(tools)} 个工具, "
        f"允许目录={[str(d) for d in allowed_directories] or '不限制'}, "
        f"strict_policy={security.strict_policy}"
    )
    return tools


def extract_tool_detail(tool_name: str, arguments: str) -> Optional[str]:
    """
    从工具参数中提取用于展示的摘要（路径、命令、查询或 URL）

    参数无法解析时返回 None。
    """
    try:
        args = json.loads(arguments)
    except (TypeError, ValueError):
        return None
    if not isinstance(args, dict):
        return None

    def text(key: str) -> Optional[str]:
        value = args.get(key)
        return value if isinstance(value, str) else None

    if tool_name in ("edit_file", "write_file", "read_file"):
        return text("path") or text("file_path")
    if tool_name == "bash":
        command = text("command")
        if command is not None and len(command) > 60:
            return command[:57] + "..."
        return command
    if tool_name == "memory_search":
        query = text("query")
        return f'"{query}"' if query is not None else None
    if tool_name == "web_fetch":
        return text("url")
    return None
