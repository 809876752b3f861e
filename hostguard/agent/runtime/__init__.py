"""
Agent Runtime

工具调用的执行入口。
"""

from hostguard.agent.runtime.tool_executor import (
    ToolCall,
    ToolExecutor,
    ToolResult,
    ToolResultStatus,
    create_tool_executor,
)

__all__ = [
    "ToolCall",
    "ToolExecutor",
    "ToolResult",
    "ToolResultStatus",
    "create_tool_executor",
]
