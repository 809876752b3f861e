"""
Memory 工具

- memory_search: 有记忆索引时走索引检索，否则在工作空间笔记中做子串扫描
- memory_get: 在 memory_search 之后按行号读取片段
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Protocol, Sequence

import aiofiles
import aiofiles.os

from hostguard.agent.security.errors import ToolIoError
from hostguard.agent.security.path_scope import check_path_allowed, expand_home, resolve_real_path
from hostguard.system.tools.base import (
    Tool,
    ToolSchema,
    format_numbered_lines,
    optional_int,
    parse_arguments,
    require_str,
    run_blocking,
    split_lines,
)

DEFAULT_SEARCH_LIMIT = 5
DEFAULT_GET_LINES = 50
PREVIEW_CHARS = 200

NO_RESULTS = "No results found"

# 相对工作空间解析的记忆文件
WORKSPACE_MEMORY_FILES = ("MEMORY.md", "HEARTBEAT.md")
WORKSPACE_MEMORY_DIR = "memory"


@dataclass
class MemoryChunk:
    """记忆索引返回的片段"""
    file: str
    line_start: int
    line_end: int
    score: float
    content: str


class MemoryIndex(Protocol):
    """
    记忆索引接口

    search 可以是同步函数，也可以是协程函数。
    """

    def has_embeddings(self) -> bool:
        ...

    def search(self, query: str, limit: int) -> Any:
        ...


def _search_params() -> dict:
    return {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The search query",
            },
            "limit": {
                "type": "integer",
                "description": f"Maximum number of results (default: {DEFAULT_SEARCH_LIMIT})",
            },
        },
        "required": ["query"],
    }


async def _read_lines(path: Path) -> List[str]:
    async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as f:
        return split_lines(await f.read())


class MemorySearchTool(Tool):
    """子串扫描版 memory_search（MEMORY.md 与 memory/*.md）"""

    name = "memory_search"

    def __init__(self, workspace: Path):
        self._workspace = Path(workspace)

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Search the memory index for relevant information",
            parameters=_search_params(),
        )

    def _candidate_files(self) -> List[Path]:
        files = []
        memory_file = self._workspace / "MEMORY.md"
        if memory_file.is_file():
            files.append(memory_file)
        memory_dir = self._workspace / WORKSPACE_MEMORY_DIR
        if memory_dir.is_dir():
            files.extend(sorted(p for p in memory_dir.glob("*.md") if p.is_file()))
        return files

    async def execute(self, arguments: str) -> str:
        args = parse_arguments(arguments)
        query = require_str(args, "query")
        limit = optional_int(args, "limit", DEFAULT_SEARCH_LIMIT)

        self.logger.debug(f"记忆搜索(扫描): {query} (limit: {limit})")

        needle = query.lower()
        results: List[str] = []
        for path in await run_blocking(self._candidate_files):
            if len(results) >= limit:
                break
            try:
                lines = await _read_lines(path)
            except OSError as e:
                self.logger.debug(f"跳过无法读取的记忆文件 {path}: {e}")
                continue
            label = path.relative_to(self._workspace).as_posix()
            for i, line in enumerate(lines):
                if needle in line.lower():
                    results.append(f"{label}:{i + 1}: {line}")
                    if len(results) >= limit:
                        break

        return "\n".join(results) if results else NO_RESULTS


class MemorySearchToolWithIndex(Tool):
    """索引版 memory_search"""

    name = "memory_search"

    def __init__(self, memory: MemoryIndex):
        self._memory = memory

    def schema(self) -> ToolSchema:
        if self._memory.has_embeddings():
            description = (
                "Search the memory index using hybrid semantic + keyword search "
                "for relevant information"
            )
        else:
            description = "Search the memory index for relevant information"
        return ToolSchema(name=self.name, description=description, parameters=_search_params())

    async def execute(self, arguments: str) -> str:
        args = parse_arguments(arguments)
        query = require_str(args, "query")
        limit = optional_int(args, "limit", DEFAULT_SEARCH_LIMIT)

        search_type = "hybrid" if self._memory.has_embeddings() else "FTS"
        self.logger.debug(f"记忆搜索({search_type}): {query} (limit: {limit})")

        chunks = self._memory.search(query, limit)
        if inspect.isawaitable(chunks):
            chunks = await chunks

        if not chunks:
            return NO_RESULTS

        formatted = []
        for i, chunk in enumerate(chunks):
            preview = chunk.content[:PREVIEW_CHARS].replace("\n", " ")
            ellipsis = "..." if len(chunk.content) > PREVIEW_CHARS else ""
            formatted.append(
                f"{i + 1}. {chunk.file} (lines {chunk.line_start}-{chunk.line_end}, "
                f"score: {chunk.score:.3f})\n   {preview}{ellipsis}"
            )
        return "\n\n".join(formatted)


class MemoryGetTool(Tool):
    """按行号读取记忆文件片段"""

    name = "memory_get"

    def __init__(self, workspace: Path, allowed_directories: Sequence[Path] = ()):
        """
        Args:
            workspace: 工作空间目录
            allowed_directories: 允许目录；非空时工作空间总是被额外允许
        """
        self._workspace = Path(workspace)
        if allowed_directories:
            self._allowed_directories = tuple(allowed_directories) + (
                resolve_real_path(str(self._workspace)),
            )
        else:
            self._allowed_directories = ()

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description=(
                "Safe snippet read from MEMORY.md or memory/*.md with optional line range; "
                "use after memory_search to pull only the needed lines and keep context small."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the file (e.g., 'MEMORY.md' or 'memory/2024-01-15.md')",
                    },
                    "from": {
                        "type": "integer",
                        "description": "Starting line number (1-indexed, default: 1)",
                    },
                    "lines": {
                        "type": "integer",
                        "description": f"Number of lines to read (default: {DEFAULT_GET_LINES})",
                    },
                },
                "required": ["path"],
            },
        )

    def _resolve_path(self, path: str) -> Path:
        if path.startswith(f"{WORKSPACE_MEMORY_DIR}/") or path in WORKSPACE_MEMORY_FILES:
            return resolve_real_path(str(self._workspace / path))
        return resolve_real_path(expand_home(path))

    async def execute(self, arguments: str) -> str:
        args = parse_arguments(arguments)
        path = require_str(args, "path")
        start_line = max(optional_int(args, "from", 1), 1)
        count = optional_int(args, "lines", DEFAULT_GET_LINES)

        real_path = await run_blocking(self._resolve_path, path)
        check_path_allowed(real_path, self._allowed_directories)

        self.logger.debug(f"读取记忆片段: {real_path} (from: {start_line}, lines: {count})")

        if not await aiofiles.os.path.isfile(real_path):
            return f"File not found: {path}"

        try:
            lines = await _read_lines(real_path)
        except OSError as e:
            raise ToolIoError(f"Cannot read {real_path}: {e}") from e

        total = len(lines)
        start = min(start_line - 1, total)
        end = min(start + count, total)

        if start >= total:
            return f"Line {start_line} is past end of file ({total} lines)"

        header = f"# {path} (lines {start + 1}-{end} of {total})\n"
        return header + format_numbered_lines(lines[start:end], start)
