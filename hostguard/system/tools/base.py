"""
工具基类定义

定义工具 schema、工具能力接口和参数解析辅助函数。
"""

from __future__ import annotations

import asyncio
import functools
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from hostguard.agent.security.errors import InvalidArguments
from hostguard.system.services.logger import ToolsLoggerMixin


@dataclass
class ToolSchema:
    """
    工具 schema

    兼容OpenAI function calling和Claude tool use格式。
    """
    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)  # JSON Schema格式

    def to_openai_format(self) -> dict:
        """转换为OpenAI function calling格式"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            }
        }

    def to_anthropic_format(self) -> dict:
        """转换为Claude tool use格式"""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class Tool(ToolsLoggerMixin, ABC):
    """
    工具能力接口

    每个工具对应一条固定顺序的执行管道：参数校验 → 路径解析与范围检查
    → 过滤 → 受保护文件 / 策略检查 → 执行。任一步失败即抛出
    HostGuardError 子类，由 ToolExecutor 转换为结果。
    """

    name: str = ""

    @abstractmethod
    def schema(self) -> ToolSchema:
        """参数 schema"""

    @abstractmethod
    async def execute(self, arguments: str) -> str:
        """
        执行工具

        Args:
            arguments: JSON 对象字符串

        Returns:
            工具输出文本
        """


# ============== 参数解析 ==============

def parse_arguments(arguments: str) -> Dict[str, Any]:
    """
    解析 JSON 参数

    Raises:
        InvalidArguments: 不是合法的 JSON 对象
    """
    try:
        args = json.loads(arguments) if arguments else {}
    except (TypeError, ValueError) as e:
        raise InvalidArguments(f"Invalid JSON arguments: {e}") from e
    if not isinstance(args, dict):
        raise InvalidArguments("Arguments must be a JSON object")
    return args


def require_str(args: Dict[str, Any], key: str) -> str:
    """必需的字符串参数"""
    value = args.get(key)
    if value is None:
        raise InvalidArguments(f"Missing {key}")
    if not isinstance(value, str):
        raise InvalidArguments(f"{key} must be a string")
    return value


def optional_int(
    args: Dict[str, Any],
    key: str,
    default: Optional[int] = None,
    minimum: int = 0,
) -> Optional[int]:
    """可选的非负整数参数"""
    value = args.get(key)
    if value is None:
        return default
    # bool 是 int 的子类
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArguments(f"{key} must be an integer")
    if value < minimum:
        raise InvalidArguments(f"{key} must be >= {minimum}")
    return value


def optional_bool(args: Dict[str, Any], key: str, default: bool = False) -> bool:
    """可选的布尔参数"""
    value = args.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidArguments(f"{key} must be a boolean")
    return value


def split_lines(content: str) -> List[str]:
    """
    按行切分

    只按 \\n 切分并去掉行尾的 \\r；末尾换行不产生空行。
    """
    if not content:
        return []
    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def format_numbered_lines(lines: List[str], start: int) -> str:
    """按 "{n:4}\\t{line}" 渲染，行号从 start + 1 开始"""
    return "\n".join(f"{start + i + 1:4}\t{line}" for i, line in enumerate(lines))


async def run_blocking(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """在默认线程池中运行阻塞函数（路径解析、审计写入、策略校验等）"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
