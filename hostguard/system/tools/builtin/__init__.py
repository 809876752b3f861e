"""
内建工具模块

bash、文件读写编辑、记忆检索与 URL 抓取。
"""

from hostguard.system.tools.builtin.shell import BashTool
from hostguard.system.tools.builtin.file import ReadFileTool, WriteFileTool, EditFileTool
from hostguard.system.tools.builtin.memory import (
    MemoryChunk,
    MemoryGetTool,
    MemoryIndex,
    MemorySearchTool,
    MemorySearchToolWithIndex,
)
from hostguard.system.tools.builtin.http import WebFetchTool

__all__ = [
    "BashTool",
    "ReadFileTool",
    "WriteFileTool",
    "EditFileTool",
    "MemoryChunk",
    "MemoryGetTool",
    "MemoryIndex",
    "MemorySearchTool",
    "MemorySearchToolWithIndex",
    "WebFetchTool",
]
