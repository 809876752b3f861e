"""
工具系统模块

提供工具接口、内建工具和固定顺序的工具注册表。
"""

from hostguard.system.tools.base import Tool, ToolSchema
from hostguard.system.tools.registry import (
    ToolRegistry,
    create_default_tools,
    extract_tool_detail,
)

__all__ = [
    "Tool",
    "ToolSchema",
    "ToolRegistry",
    "create_default_tools",
    "extract_tool_detail",
]
