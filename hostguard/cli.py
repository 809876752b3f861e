"""
HostGuard 命令行界面

管理操作：策略签名与校验、审计日志查看与哈希链校验、
密钥扫描、API 令牌，以及通过完整管道执行单次工具调用。
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from hostguard import __version__
from hostguard.agent.runtime.tool_executor import ToolCall, create_tool_executor
from hostguard.agent.security.errors import HostGuardError
from hostguard.agent.security.policy import (
    AuditAction,
    PolicyVerification,
    audit_best_effort,
    load_and_verify_policy,
    read_audit_log,
    sign_policy,
    verify_audit_chain,
)
from hostguard.agent.security.secret_scanner import redact_secrets
from hostguard.system.services.auth import ensure_api_token
from hostguard.system.services.config_center import HostGuardConfig, load_config
from hostguard.system.services.logger import Layer, setup_logging, trace_context


# ANSI颜色代码
class Colors:
    """终端颜色"""
    RESET = "\033[0m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"


def colorize(text: str, color: str) -> str:
    """给文本添加颜色（非终端输出时不着色）"""
    if not sys.stdout.isatty():
        return text
    return f"{color}{text}{Colors.RESET}"


_VERIFY_COLORS = {
    PolicyVerification.VERIFIED: Colors.GREEN,
    PolicyVerification.UNSIGNED: Colors.YELLOW,
    PolicyVerification.MISSING: Colors.YELLOW,
    PolicyVerification.TAMPER_DETECTED: Colors.RED,
}


def cmd_sign(config: HostGuardConfig, args: argparse.Namespace) -> int:
    manifest = sign_policy(config.workspace_path(), config.state_dir())
    print(colorize(f"策略已签名: sha256={manifest.sha256}", Colors.GREEN))
    return 0


def cmd_verify(config: HostGuardConfig, args: argparse.Namespace) -> int:
    state_dir = config.state_dir()
    result = load_and_verify_policy(config.workspace_path(), state_dir)
    print(colorize(f"策略校验结果: {result.value}", _VERIFY_COLORS[result]))

    if result is PolicyVerification.TAMPER_DETECTED:
        audit_best_effort(state_dir, AuditAction.TAMPER_DETECTED, "cli", "verify")
        return 2
    if result is PolicyVerification.VERIFIED:
        audit_best_effort(state_dir, AuditAction.POLICY_VERIFIED, "cli", "verify")
    return 0


def cmd_audit(config: HostGuardConfig, args: argparse.Namespace) -> int:
    state_dir = config.state_dir()
    entries = read_audit_log(state_dir)
    shown = entries[-args.tail:] if args.tail else entries
    for entry in shown:
        line = f"{entry.ts}  {entry.action:<16} {entry.actor:<16} {entry.target}"
        if entry.detail:
            line += colorize(f"  ({entry.detail})", Colors.DIM)
        print(line)

    if not args.verify_chain:
        return 0

    broken = verify_audit_chain(state_dir)
    if broken is None:
        print(colorize(f"哈希链完整 ({len(entries)} 条)", Colors.GREEN))
        return 0

    print(colorize(f"哈希链在第 {broken} 条记录处断开", Colors.RED))
    audit_best_effort(
        state_dir,
        AuditAction.CHAIN_BROKEN,
        "cli",
        "audit",
        f"first broken entry index={broken}",
    )
    return 2


def cmd_scan(config: HostGuardConfig, args: argparse.Namespace) -> int:
    if args.file == "-":
        text = sys.stdin.read()
    else:
        with open(args.file, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()

    redacted, matches = redact_secrets(text)
    sys.stdout.write(redacted)
    if matches:
        kinds = sorted({m.kind for m in matches})
        print(colorize(f"\n发现 {len(matches)} 处密钥: {', '.join(kinds)}", Colors.YELLOW), file=sys.stderr)
        return 1
    return 0


def cmd_token(config: HostGuardConfig, args: argparse.Namespace) -> int:
    print(ensure_api_token(config.state_dir()))
    return 0


async def run_tool(config: HostGuardConfig, args: argparse.Namespace) -> int:
    executor = create_tool_executor(config)
    result = await executor.execute(ToolCall(tool_name=args.tool, arguments=args.arguments))
    if result.ok:
        print(result.output)
        return 0
    print(colorize(f"[{result.status.value}] {result.error_type}: {result.error}", Colors.RED))
    return 1


def cmd_run(config: HostGuardConfig, args: argparse.Namespace) -> int:
    return asyncio.run(run_tool(config, args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostguard",
        description="HostGuard - Agent 工具调用安全层管理工具",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  %(prog)s sign                          # 签名工作空间中的 HOSTGUARD.md
  %(prog)s verify                        # 校验策略签名
  %(prog)s audit --verify-chain          # 查看审计日志并校验哈希链
  %(prog)s scan output.log               # 脱敏文件中的密钥
  %(prog)s run bash '{"command": "ls"}'  # 通过安全管道执行一次工具调用
        """,
    )
    parser.add_argument("-c", "--config", default=None, help="配置文件路径（默认 ~/.hostguard/config.yaml）")
    parser.add_argument("-v", "--verbose", action="store_true", help="显示详细日志")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sign", help="签名安全策略").set_defaults(func=cmd_sign)
    sub.add_parser("verify", help="校验安全策略").set_defaults(func=cmd_verify)

    audit = sub.add_parser("audit", help="查看审计日志")
    audit.add_argument("--verify-chain", action="store_true", help="校验哈希链")
    audit.add_argument("-n", "--tail", type=int, default=0, help="只显示最后 N 条")
    audit.set_defaults(func=cmd_audit)

    scan = sub.add_parser("scan", help="扫描并脱敏密钥")
    scan.add_argument("file", help="文件路径，- 表示标准输入")
    scan.set_defaults(func=cmd_scan)

    sub.add_parser("token", help="显示（必要时生成）API 令牌").set_defaults(func=cmd_token)

    run = sub.add_parser("run", help="执行一次工具调用")
    run.add_argument("tool", help="工具名称")
    run.add_argument("arguments", nargs="?", default="{}", help="JSON 参数")
    run.set_defaults(func=cmd_run)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """主函数"""
    args = build_parser().parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        use_enhanced_format=args.verbose,
    )

    with trace_context(layer=Layer.CLI, component=args.command):
        try:
            config = load_config(args.config)
            return args.func(config, args)
        except HostGuardError as e:
            print(colorize(f"错误: {e.message}", Colors.RED), file=sys.stderr)
            return 1
        except OSError as e:
            print(colorize(f"I/O 错误: {e}", Colors.RED), file=sys.stderr)
            return 1
        except ValueError as e:
            print(colorize(f"配置错误: {e}", Colors.RED), file=sys.stderr)
            return 1


if __name__ == "__main__":
    sys.exit(main())
