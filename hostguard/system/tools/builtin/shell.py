"""
Shell执行工具

bash 工具的执行管道：
- 命令过滤（硬编码基线 + 用户配置）
- 受保护文件引用检查（严格模式拒绝，宽松模式告警）
- 环境变量过滤
- 超时控制：到期后杀死整个进程组并回收子进程
- 执行后的策略完整性复核
"""

from __future__ import annotations

import asyncio
import os
import signal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from hostguard.agent.security.errors import CommandTimeout, ProtectedFileDenied, TamperDetected, ToolIoError
from hostguard.agent.security.policy import (
    POLICY_FILENAME,
    AuditAction,
    PolicyVerification,
    audit_best_effort,
    check_bash_command,
    load_and_verify_policy,
)
from hostguard.agent.security.tool_filters import CompiledToolFilter
from hostguard.system.tools.base import (
    Tool,
    ToolSchema,
    optional_int,
    parse_arguments,
    require_str,
    run_blocking,
)

# 审计记录中保留的命令长度
_AUDIT_COMMAND_CHARS = 200

TAMPER_WARNING = "\n\n[WARNING: Security policy tamper detected after execution]"


def env_var_denied(name: str, patterns: Iterable[str]) -> bool:
    """
    环境变量名是否命中拒绝模式

    模式（大小写不敏感）:
    - *FOO*: 包含
    - *_KEY: 后缀
    - SECRET_*: 前缀
    - 其他: 完全相等
    """
    upper = name.upper()
    for pattern in patterns:
        p = pattern.upper()
        if len(p) >= 2 and p.startswith("*") and p.endswith("*"):
            if p[1:-1] in upper:
                return True
        elif p.startswith("*"):
            if upper.endswith(p[1:]):
                return True
        elif p.endswith("*"):
            if upper.startswith(p[:-1]):
                return True
        elif upper == p:
            return True
    return False


class BashTool(Tool):
    """
    bash 命令执行工具

    子进程在独立会话中启动，超时或任务取消时向整个进程组发送 SIGKILL，
    并在抛出错误前回收子进程。
    """

    name = "bash"

    def __init__(
        self,
        default_timeout_ms: int,
        state_dir: Path,
        command_filter: CompiledToolFilter,
        strict_policy: bool,
        workspace_path: Path,
        env_deny_patterns: Iterable[str] = (),
    ):
        """
        Args:
            default_timeout_ms: 默认超时（毫秒）
            state_dir: 状态目录（审计日志、策略清单）
            command_filter: 已合并硬编码基线的命令过滤器
            strict_policy: 严格模式
            workspace_path: 工作空间目录
            env_deny_patterns: 环境变量拒绝模式
        """
        self._default_timeout_ms = default_timeout_ms
        self._state_dir = Path(state_dir)
        self._filter = command_filter
        self._strict_policy = strict_policy
        self._workspace_path = Path(workspace_path)
        self._env_deny_patterns = tuple(env_deny_patterns)

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Execute a bash command and return the output",
            parameters={
                "type": "object",
                "properties": {
                    "command": {
                        "type": "string",
                        "description": "The bash command to execute",
                    },
                    "timeout_ms": {
                        "type": "integer",
                        "description": f"Optional timeout in milliseconds (default: {self._default_timeout_ms})",
                    },
                },
                "required": ["command"],
            },
        )

    def env_var_denied(self, name: str) -> bool:
        return env_var_denied(name, self._env_deny_patterns)

    def _build_env(self) -> Optional[Dict[str, str]]:
        """过滤后的环境变量；没有拒绝模式时继承当前环境"""
        if not self._env_deny_patterns:
            return None
        return {k: v for k, v in os.environ.items() if not self.env_var_denied(k)}

    def _references_workspace(self, command: str) -> bool:
        return (
            str(self._workspace_path) in command
            or POLICY_FILENAME.lower() in command.lower()
        )

    async def execute(self, arguments: str) -> str:
        args = parse_arguments(arguments)
        command = require_str(args, "command")

        self._filter.check(command, self.name, "command")

        timeout_ms = optional_int(args, "timeout_ms", self._default_timeout_ms, minimum=1)

        warnings: List[str] = []
        suspicious = check_bash_command(command)
        if suspicious:
            detail = (
                f"Bash command references protected files: {suspicious} "
                f"(cmd: {command[:_AUDIT_COMMAND_CHARS]})"
            )
            await run_blocking(
                audit_best_effort,
                self._state_dir,
                AuditAction.WRITE_BLOCKED,
                "tool:bash",
                command[:_AUDIT_COMMAND_CHARS],
                detail,
            )
            if self._strict_policy:
                self.log_warning(f"bash 命令引用受保护文件，已拒绝: {suspicious}")
                raise ProtectedFileDenied(
                    f"Blocked: bash command references protected files: {suspicious}",
                    targets=suspicious,
                )
            self.log_warning(f"bash 命令可能修改受保护文件: {suspicious}")
            warnings.append(f"\n\n[WARNING: command references protected files: {suspicious}]")

        self.logger.debug(f"执行 bash 命令 (超时 {timeout_ms}ms): {command}")

        stdout, stderr, exit_code = await self._run(command, timeout_ms)
        result = self._format_output(stdout, stderr, exit_code)

        if self._references_workspace(command):
            result += await self._verify_policy_after_exec()

        return result + "".join(warnings)

    async def _run(self, command: str, timeout_ms: int) -> Tuple[str, str, int]:
        """启动子进程并在截止时间内等待其结束"""
        try:
            proc = await asyncio.create_subprocess_exec(
                "bash", "-c", command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._build_env(),
                start_new_session=True,
            )
        except OSError as e:
            raise ToolIoError(f"Failed to spawn bash: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(),
                timeout=timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            await self._kill(proc)
            self.log_warning(f"bash 命令超时 ({timeout_ms}ms)，进程组已终止: pid={proc.pid}")
            raise CommandTimeout(timeout_ms)
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        return (
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            proc.returncode,
        )

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        """杀死进程组并回收子进程"""
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await proc.wait()

    @staticmethod
    def _format_output(stdout: str, stderr: str, exit_code: Optional[int]) -> str:
        result = stdout
        if stderr:
            if result:
                result += "\n\nSTDERR:\n"
            result += stderr
        if not result:
            code = exit_code if exit_code is not None and exit_code >= 0 else -1
            result = f"Command completed with exit code: {code}"
        return result

    async def _verify_policy_after_exec(self) -> str:
        """
        命令引用了工作空间或策略文件时复核策略签名

        Returns:
            宽松模式下追加到结果的告警文本（无异常时为空串）

        Raises:
            TamperDetected: 严格模式下检测到篡改
        """
        verification = await run_blocking(
            load_and_verify_policy, self._workspace_path, self._state_dir
        )
        if verification is not PolicyVerification.TAMPER_DETECTED:
            return ""

        await run_blocking(
            audit_best_effort,
            self._state_dir,
            AuditAction.TAMPER_DETECTED,
            "tool:bash",
            "post_exec_check",
        )
        self.logger.error("bash 执行后检测到安全策略被篡改")

        if self._strict_policy:
            raise TamperDetected(
                "Security policy tamper detected after bash execution. "
                f"The command may have modified {POLICY_FILENAME}."
            )
        return TAMPER_WARNING
