"""
文件操作工具

read_file / write_file / edit_file 的执行管道。

所有路径先解析为真实路径，之后的范围检查、过滤和实际 I/O
都使用解析结果；写入和编辑在落盘前拒绝受保护文件。
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import aiofiles
import aiofiles.os

from hostguard.agent.security.errors import (
    InvalidArguments,
    OldStringNotFound,
    ProtectedFileDenied,
    ToolIoError,
)
from hostguard.agent.security.path_scope import check_path_allowed, resolve_real_path
from hostguard.agent.security.policy import AuditAction, audit_best_effort, is_workspace_file_protected
from hostguard.agent.security.tool_filters import CompiledToolFilter
from hostguard.system.tools.base import (
    Tool,
    ToolSchema,
    format_numbered_lines,
    optional_bool,
    optional_int,
    parse_arguments,
    require_str,
    run_blocking,
    split_lines,
)


class _PathTool(Tool):
    """带路径参数的工具公共部分"""

    def __init__(self, path_filter: CompiledToolFilter, allowed_directories: Sequence[Path]):
        self._filter = path_filter
        self._allowed_directories = tuple(allowed_directories)

    async def _resolve_checked(self, path: str) -> Path:
        """解析 → 范围检查 → 过滤，返回用于 I/O 的真实路径"""
        real_path = await run_blocking(resolve_real_path, path)
        check_path_allowed(real_path, self._allowed_directories)
        self._filter.check(str(real_path), self.name, "path")
        return real_path


class _MutatingPathTool(_PathTool):
    """会修改文件的工具：额外持有状态目录用于审计"""

    def __init__(
        self,
        state_dir: Path,
        path_filter: CompiledToolFilter,
        allowed_directories: Sequence[Path],
    ):
        super().__init__(path_filter, allowed_directories)
        self._state_dir = Path(state_dir)

    async def _reject_protected(self, real_path: Path, verb: str) -> None:
        """
        拒绝受保护文件

        Raises:
            ProtectedFileDenied: 文件名在受保护集合中（已写入审计）
        """
        if not is_workspace_file_protected(real_path.name):
            return

        await run_blocking(
            audit_best_effort,
            self._state_dir,
            AuditAction.WRITE_BLOCKED,
            f"tool:{self.name}",
            str(real_path),
            f"Agent attempted {verb} to {real_path}",
        )
        self.log_warning(f"拒绝{verb}受保护文件: {real_path}")
        raise ProtectedFileDenied(
            f"Cannot {verb} protected file: {real_path}. "
            "This file is managed by the security system. "
            "Use `hostguard sign` to update the security policy.",
            targets=[real_path.name],
        )


async def _read_text(path: Path) -> str:
    try:
        async with aiofiles.open(path, "r", encoding="utf-8", newline="") as f:
            return await f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ToolIoError(f"Cannot read {path}: {e}") from e


async def _write_text(path: Path, content: str) -> None:
    try:
        async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
            await f.write(content)
    except OSError as e:
        raise ToolIoError(f"Cannot write {path}: {e}") from e


class ReadFileTool(_PathTool):
    """读取文件，支持按行偏移和限制"""

    name = "read_file"

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Read the contents of a file",
            parameters={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "The path to the file to read",
                    },
                    "offset": {
                        "type": "integer",
                        "description": "Line number to start reading from (0-indexed)",
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of lines to read",
                    },
                },
                "required": ["path"],
            },
        )

    async def execute(self, arguments: str) -> str:
        args = parse_arguments(arguments)
        path = require_str(args, "path")
        offset = optional_int(args, "offset", 0)
        limit = optional_int(args, "limit")

        real_path = await self._resolve_checked(path)
        self.logger.debug(f"读取文件: {real_path}")

        lines = split_lines(await _read_text(real_path))
        total = len(lines)

        start = min(offset, total)
        end = total if limit is None else min(start + limit, total)
        return format_numbered_lines(lines[start:end], start)


class WriteFileTool(_MutatingPathTool):
    """写入文件（创建或覆盖）"""

    name = "write_file"

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Write content to a file (creates or overwrites)",
            parameters={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "The path to the file to write",
                    },
                    "content": {
                        "type": "string",
                        "description": "The content to write to the file",
                    },
                },
                "required": ["path", "content"],
            },
        )

    async def execute(self, arguments: str) -> str:
        args = parse_arguments(arguments)
        path = require_str(args, "path")
        content = require_str(args, "content")

        real_path = await self._resolve_checked(path)
        await self._reject_protected(real_path, "write")

        self.logger.debug(f"写入文件: {real_path}")

        try:
            await aiofiles.os.makedirs(real_path.parent, exist_ok=True)
        except OSError as e:
            raise ToolIoError(f"Cannot create directory {real_path.parent}: {e}") from e
        await _write_text(real_path, content)

        return f"Successfully wrote {len(content.encode('utf-8'))} bytes to {real_path}"


class EditFileTool(_MutatingPathTool):
    """按 old_string → new_string 替换编辑文件"""

    name = "edit_file"

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Edit a file by replacing old_string with new_string",
            parameters={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "The path to the file to edit",
                    },
                    "old_string": {
                        "type": "string",
                        "description": "The text to replace",
                    },
                    "new_string": {
                        "type": "string",
                        "description": "The replacement text",
                    },
                    "replace_all": {
                        "type": "boolean",
                        "description": "Replace all occurrences (default: false)",
                    },
                },
                "required": ["path", "old_string", "new_string"],
            },
        )

    async def execute(self, arguments: str) -> str:
        args = parse_arguments(arguments)
        path = require_str(args, "path")
        old_string = require_str(args, "old_string")
        new_string = require_str(args, "new_string")
        replace_all = optional_bool(args, "replace_all", False)
        if not old_string:
            raise InvalidArguments("old_string must not be empty")

        real_path = await self._resolve_checked(path)
        await self._reject_protected(real_path, "edit")

        self.logger.debug(f"编辑文件: {real_path}")

        content = await _read_text(real_path)

        if replace_all:
            count = content.count(old_string)
            new_content = content.replace(old_string, new_string)
        elif old_string in content:
            count = 1
            new_content = content.replace(old_string, new_string, 1)
        else:
            raise OldStringNotFound(str(real_path))

        if count:
            await _write_text(real_path, new_content)

        return f"Replaced {count} occurrence(s) in {real_path}"
