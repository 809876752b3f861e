"""
Tool Executor

工具调用执行器，负责：
- 按名称查找工具
- 工具执行（每次调用在独立的追踪上下文中）
- 把管道中的异常转换为带状态的结果
- 对成功输出做密钥脱敏
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union
from uuid import uuid4

from hostguard.agent.security.errors import DENIAL_ERRORS, CommandTimeout, HostGuardError
from hostguard.agent.security.secret_scanner import redact_secrets
from hostguard.system.services.logger import Layer, LoggerMixin, trace_context
from hostguard.system.tools.registry import ToolRegistry, create_default_tools

if TYPE_CHECKING:
    from hostguard.system.services.config_center import HostGuardConfig
    from hostguard.system.tools.builtin.memory import MemoryIndex


class ToolResultStatus(Enum):
    """工具执行结果状态"""
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    DENIED = "denied"


@dataclass
class ToolCall:
    """工具调用"""
    call_id: str = field(default_factory=lambda: str(uuid4()))
    tool_name: str = ""
    arguments: str = "{}"  # 原始 JSON 字符串

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        """从 OpenAI 格式的 tool_call 字典创建"""
        function = data.get("function", {})
        arguments = function.get("arguments", "{}")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        return cls(
            call_id=data.get("id") or str(uuid4()),
            tool_name=function.get("name", ""),
            arguments=arguments,
        )


@dataclass
class ToolResult:
    """工具执行结果"""
    call_id: str
    tool_name: str
    output: str = ""
    status: ToolResultStatus = ToolResultStatus.SUCCESS
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_ms: float = 0.0
    redactions: int = 0

    @property
    def ok(self) -> bool:
        return self.status == ToolResultStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "call_id": self.call_id,
            "tool_name": self.tool_name,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "error_type": self.error_type,
            "duration_ms": self.duration_ms,
            "redactions": self.redactions,
        }

    def to_string(self) -> str:
        """转换为字符串（用于 LLM 响应）"""
        if self.status == ToolResultStatus.SUCCESS:
            return self.output
        return f"Error: {self.error}"


class ToolExecutor(LoggerMixin):
    """
    工具执行器

    安全检查全部在工具自身的管道中完成，执行器不做额外放行或拒绝；
    它只负责把异常映射为结果状态：
    - 策略拒绝（过滤、路径、受保护文件、篡改）→ DENIED
    - 超时 → TIMEOUT
    - 其他异常 → ERROR（非 HostGuardError 额外记录堆栈）
    """

    _log_layer = Layer.AGENT

    def __init__(self, registry: ToolRegistry, redact_output: bool = True):
        """
        Args:
            registry: 工具注册表
            redact_output: 是否对成功输出做密钥脱敏
        """
        self._registry = registry
        self._redact_output = redact_output

        # 执行统计
        self._execution_count = 0
        self._error_count = 0
        self._denied_count = 0
        self._redaction_count = 0

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def parse_tool_call(self, data: Union[Dict[str, Any], str]) -> ToolCall:
        if isinstance(data, str):
            data = json.loads(data)
        return ToolCall.from_dict(data)

    async def execute(self, tool_call: ToolCall) -> ToolResult:
        """
        执行工具调用

        Args:
            tool_call: 工具调用

        Returns:
            执行结果（不会向调用方抛出异常）
        """
        with trace_context(trace_id=tool_call.call_id, layer=Layer.AGENT, component=tool_call.tool_name):
            return await self._execute(tool_call)

    async def _execute(self, tool_call: ToolCall) -> ToolResult:
        start = time.monotonic()
        self._execution_count += 1

        def elapsed() -> float:
            return (time.monotonic() - start) * 1000

        tool = self._registry.get(tool_call.tool_name)
        if tool is None:
            self._error_count += 1
            return ToolResult(
                call_id=tool_call.call_id,
                tool_name=tool_call.tool_name,
                status=ToolResultStatus.ERROR,
                error=f"Unknown tool: {tool_call.tool_name}",
                error_type="UnknownTool",
            )

        try:
            output = await tool.execute(tool_call.arguments)
        except DENIAL_ERRORS as e:
            self._denied_count += 1
            self.logger.warning(f"工具调用被拒绝 {tool_call.tool_name}: {e.message}")
            return self._failure(tool_call, ToolResultStatus.DENIED, e, elapsed())
        except CommandTimeout as e:
            self._error_count += 1
            self.logger.warning(f"工具执行超时 {tool_call.tool_name}: {e.message}")
            return self._failure(tool_call, ToolResultStatus.TIMEOUT, e, elapsed())
        except HostGuardError as e:
            self._error_count += 1
            self.logger.error(f"工具执行失败 {tool_call.tool_name}: {e.message}")
            return self._failure(tool_call, ToolResultStatus.ERROR, e, elapsed())
        except Exception as e:
            self._error_count += 1
            self.logger.exception(f"工具执行异常 {tool_call.tool_name}: {e}")
            return self._failure(tool_call, ToolResultStatus.ERROR, e, elapsed())

        redactions = 0
        if self._redact_output:
            output, matches = redact_secrets(output)
            redactions = len(matches)
            if redactions:
                self._redaction_count += redactions
                self.logger.warning(
                    f"工具输出中脱敏 {redactions} 处密钥: "
                    f"{sorted({m.kind for m in matches})}"
                )

        return ToolResult(
            call_id=tool_call.call_id,
            tool_name=tool_call.tool_name,
            output=output,
            duration_ms=elapsed(),
            redactions=redactions,
        )

    def _failure(
        self,
        tool_call: ToolCall,
        status: ToolResultStatus,
        error: Exception,
        duration_ms: float,
    ) -> ToolResult:
        message = error.message if isinstance(error, HostGuardError) else str(error)
        if self._redact_output:
            message, _ = redact_secrets(message)
        return ToolResult(
            call_id=tool_call.call_id,
            tool_name=tool_call.tool_name,
            status=status,
            error=message,
            error_type=type(error).__name__,
            duration_ms=duration_ms,
        )

    async def execute_batch(
        self,
        tool_calls: List[ToolCall],
        parallel: bool = True,
    ) -> List[ToolResult]:
        """
        批量执行工具调用

        Args:
            tool_calls: 工具调用列表
            parallel: 是否并行执行（结果顺序与输入一致）
        """
        if parallel:
            return list(await asyncio.gather(*(self.execute(tc) for tc in tool_calls)))

        results = []
        for tc in tool_calls:
            results.append(await self.execute(tc))
        return results

    def get_stats(self) -> Dict[str, Any]:
        """获取执行统计"""
        return {
            "execution_count": self._execution_count,
            "error_count": self._error_count,
            "denied_count": self._denied_count,
            "redaction_count": self._redaction_count,
            "success_rate": (
                (self._execution_count - self._error_count - self._denied_count) / self._execution_count
                if self._execution_count > 0 else 0
            ),
            "registered_tools": len(self._registry),
            "redact_output": self._redact_output,
        }


def create_tool_executor(
    config: "HostGuardConfig",
    memory: Optional["MemoryIndex"] = None,
) -> ToolExecutor:
    """
    按配置创建工具执行器

    Args:
        config: HostGuard 配置
        memory: 记忆索引（可选）

    Returns:
        ToolExecutor 实例
    """
    registry = ToolRegistry(create_default_tools(config, memory))
    return ToolExecutor(registry, redact_output=config.security.redact_output)
