"""
Security Policy

安全策略与审计子系统：
- 受保护文件集合（编译期固定，只能扩展，不能缩减）
- 追加式审计日志（JSON Lines，哈希链）
- 策略文件签名与完整性校验（HMAC-SHA256，设备密钥）

审计日志和策略清单都直接存放在磁盘上，每次访问都直接读取或追加，
不在进程内持有可变共享状态。
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import sys
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Union

from hostguard.agent.security.errors import ToolIoError
from hostguard.system.services.logger import get_logger

if sys.platform != "win32":
    import fcntl
else:
    fcntl = None

logger = get_logger(__name__)

PathLike = Union[str, Path]

# ============== 文件名常量 ==============

POLICY_FILENAME = "HOSTGUARD.md"
MANIFEST_FILENAME = ".hostguard_manifest.json"
DEVICE_KEY_FILENAME = ".device_key"
AUDIT_LOG_FILENAME = ".security_audit.jsonl"

DEVICE_KEY_LENGTH = 32
MANIFEST_VERSION = 1
GENESIS_HASH = "genesis"

# HMAC 输入的域分隔前缀
_TAG_DOMAIN = b"hostguard-policy-v1\x00"

PROTECTED_FILES: FrozenSet[str] = frozenset({
    POLICY_FILENAME,
    MANIFEST_FILENAME,
    DEVICE_KEY_FILENAME,
    AUDIT_LOG_FILENAME,
})


def protected_files(extra: Optional[Iterable[str]] = None) -> FrozenSet[str]:
    """受保护文件集合，可追加额外文件名，基线永远保留"""
    if not extra:
        return PROTECTED_FILES
    return PROTECTED_FILES | frozenset(extra)


def is_workspace_file_protected(filename: str, extra: Optional[Iterable[str]] = None) -> bool:
    """文件名是否在受保护集合中（精确匹配）"""
    return filename in protected_files(extra)


def check_bash_command(command: str, extra: Optional[Iterable[str]] = None) -> List[str]:
    """
    在 shell 命令文本中查找受保护文件名

    bash 无法像文件工具那样做路径解析，这里只是尽力而为的文本扫描，
    用于执行前告警。

    Returns:
        命令中出现的受保护文件名（排序后）
    """
    lowered = command.lower()
    return sorted(name for name in protected_files(extra) if name.lower() in lowered)


# ============== 审计日志 ==============

class AuditAction(Enum):
    """审计动作"""
    WRITE_BLOCKED = "write_blocked"
    TAMPER_DETECTED = "tamper_detected"
    POLICY_SIGNED = "policy_signed"
    POLICY_VERIFIED = "policy_verified"
    CHAIN_BROKEN = "chain_broken"


@dataclass
class AuditEntry:
    """审计条目"""
    ts: str
    action: str
    actor: str
    target: str
    detail: Optional[str] = None
    prev_hash: str = GENESIS_HASH

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["detail"] is None:
            del data["detail"]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            ts=data["ts"],
            action=data["action"],
            actor=data.get("actor", ""),
            target=data.get("target", ""),
            detail=data.get("detail"),
            prev_hash=data.get("prev_hash", GENESIS_HASH),
        )


def audit_log_path(state_dir: PathLike) -> Path:
    """审计日志路径"""
    return Path(state_dir) / AUDIT_LOG_FILENAME


@contextmanager
def _locked(f) -> Iterator[None]:
    """对打开的文件加排他建议锁（非 POSIX 平台为空操作）"""
    if fcntl is None:
        yield
        return
    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
    try:
        yield
    finally:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


def _line_hash(line: bytes) -> str:
    return hashlib.sha256(line.rstrip(b"\n")).hexdigest()


def _read_last_line(f) -> Optional[bytes]:
    """从文件末尾向前读取最后一个非空行"""
    f.seek(0, os.SEEK_END)
    end = f.tell()
    if end == 0:
        return None

    chunk_size = 4096
    buffer = b""
    pos = end
    while pos > 0:
        step = min(chunk_size, pos)
        pos -= step
        f.seek(pos)
        buffer = f.read(step) + buffer
        stripped = buffer.rstrip(b"\n")
        newline = stripped.rfind(b"\n")
        if newline != -1:
            return stripped[newline + 1:]
    stripped = buffer.rstrip(b"\n")
    return stripped or None


def append_audit_entry_with_detail(
    state_dir: PathLike,
    action: AuditAction,
    actor: str,
    target: str,
    detail: Optional[str] = None,
) -> AuditEntry:
    """
    追加一条审计记录

    在排他锁内读取上一行并计算 prev_hash，然后一次性写入一行 JSON。

    Args:
        state_dir: 状态目录
        action: 审计动作
        actor: 发起者（如 tool:write_file）
        target: 目标（路径、命令摘要等）
        detail: 附加说明

    Returns:
        写入的条目

    Raises:
        OSError: 写入失败
    """
    path = audit_log_path(state_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "a+b") as f:
        with _locked(f):
            last = _read_last_line(f)
            entry = AuditEntry(
                ts=datetime.now(timezone.utc).isoformat(),
                action=action.value,
                actor=actor,
                target=target,
                detail=detail,
                prev_hash=_line_hash(last) if last else GENESIS_HASH,
            )
            line = json.dumps(entry.to_dict(), ensure_ascii=False, separators=(",", ":"))
            f.write(line.encode("utf-8") + b"\n")
            f.flush()
            os.fsync(f.fileno())

    return entry


def append_audit_entry(
    state_dir: PathLike,
    action: AuditAction,
    actor: str,
    target: str,
) -> AuditEntry:
    """追加一条不带 detail 的审计记录"""
    return append_audit_entry_with_detail(state_dir, action, actor, target, None)


def audit_best_effort(
    state_dir: PathLike,
    action: AuditAction,
    actor: str,
    target: str,
    detail: Optional[str] = None,
) -> bool:
    """
    尽力写入审计记录

    审计失败只记录日志，不会掩盖调用方的主错误路径。

    Returns:
        是否写入成功
    """
    try:
        append_audit_entry_with_detail(state_dir, action, actor, target, detail)
        return True
    except OSError as e:
        logger.warning(f"审计日志写入失败 ({action.value} {target}): {e}")
        return False


def read_audit_log(state_dir: PathLike) -> List[AuditEntry]:
    """
    读取全部审计记录

    无法解析的行会被跳过并记录警告；需要严格校验时使用 verify_audit_chain。
    """
    path = audit_log_path(state_dir)
    if not path.exists():
        return []

    entries = []
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(AuditEntry.from_dict(json.loads(line)))
            except (ValueError, KeyError) as e:
                logger.warning(f"审计日志第 {lineno} 行无法解析: {e}")
    return entries


def verify_audit_chain(state_dir: PathLike) -> Optional[int]:
    """
    校验审计日志哈希链

    Returns:
        第一条断链记录的下标（从 0 开始），链完整时返回 None
    """
    path = audit_log_path(state_dir)
    if not path.exists():
        return None

    expected = GENESIS_HASH
    with open(path, "rb") as f:
        lines = [line for line in f.read().split(b"\n") if line.strip()]

    for index, line in enumerate(lines):
        try:
            data = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return index
        if not isinstance(data, dict) or data.get("prev_hash") != expected:
            return index
        expected = _line_hash(line)
    return None


# ============== 策略签名与校验 ==============

class PolicyVerification(Enum):
    """策略校验结果"""
    VERIFIED = "verified"
    TAMPER_DETECTED = "tamper_detected"
    MISSING = "missing"
    UNSIGNED = "unsigned"


@dataclass
class PolicyManifest:
    """策略清单（存放在状态目录，不在工作空间内）"""
    policy_file: str
    sha256: str
    hmac: str
    signed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    version: int = MANIFEST_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PolicyManifest":
        """
        Raises:
            KeyError: 缺少字段
            TypeError: 字段类型不符（清单被伪造或损坏）
        """
        for key in ("policy_file", "sha256", "hmac"):
            if not isinstance(data[key], str):
                raise TypeError(f"manifest field {key} must be a string")
        return cls(
            policy_file=data["policy_file"],
            sha256=data["sha256"],
            hmac=data["hmac"],
            signed_at=data.get("signed_at", ""),
            version=int(data.get("version", MANIFEST_VERSION)),
        )


def policy_path(workspace_path: PathLike) -> Path:
    return Path(workspace_path) / POLICY_FILENAME


def manifest_path(state_dir: PathLike) -> Path:
    return Path(state_dir) / MANIFEST_FILENAME


def device_key_path(state_dir: PathLike) -> Path:
    return Path(state_dir) / DEVICE_KEY_FILENAME


def read_device_key(state_dir: PathLike) -> Optional[bytes]:
    """读取设备密钥，不存在或为空时返回 None"""
    path = device_key_path(state_dir)
    try:
        key = path.read_bytes()
    except FileNotFoundError:
        return None
    return key or None


def ensure_device_key(state_dir: PathLike) -> bytes:
    """
    获取设备密钥，不存在时生成

    新密钥为 32 字节随机数，文件权限 0600，以 O_EXCL 创建。
    """
    existing = read_device_key(state_dir)
    if existing is not None:
        return existing

    path = device_key_path(state_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    key = os.urandom(DEVICE_KEY_LENGTH)

    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        # 并发创建：以先写入者为准
        return read_device_key(state_dir) or key
    with os.fdopen(fd, "wb") as f:
        f.write(key)

    logger.info(f"设备密钥已生成: {path}")
    return key


def compute_policy_tag(key: bytes, policy_file: str, content: bytes) -> str:
    """计算策略内容的 HMAC-SHA256 标签"""
    message = _TAG_DOMAIN + policy_file.encode("utf-8") + b"\x00" + content
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def _write_atomic(path: Path, data: bytes) -> None:
    tmp = path.with_name(path.name + ".tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


def sign_policy(workspace_path: PathLike, state_dir: PathLike) -> PolicyManifest:
    """
    签名工作空间策略文件（管理操作）

    Args:
        workspace_path: 工作空间目录
        state_dir: 状态目录

    Returns:
        写入的策略清单

    Raises:
        ToolIoError: 策略文件不存在或无法写入清单
    """
    source = policy_path(workspace_path)
    try:
        content = source.read_bytes()
    except OSError as e:
        raise ToolIoError(f"Cannot read policy file {source}: {e}") from e

    key = ensure_device_key(state_dir)
    manifest = PolicyManifest(
        policy_file=POLICY_FILENAME,
        sha256=hashlib.sha256(content).hexdigest(),
        hmac=compute_policy_tag(key, POLICY_FILENAME, content),
    )

    target = manifest_path(state_dir)
    try:
        _write_atomic(target, json.dumps(manifest.to_dict(), indent=2).encode("utf-8"))
    except OSError as e:
        raise ToolIoError(f"Cannot write policy manifest {target}: {e}") from e

    audit_best_effort(
        state_dir,
        AuditAction.POLICY_SIGNED,
        "admin",
        str(source),
        f"sha256={manifest.sha256}",
    )
    logger.info(f"策略已签名: {source}")
    return manifest


def load_and_verify_policy(workspace_path: PathLike, state_dir: PathLike) -> PolicyVerification:
    """
    校验磁盘上的策略文件

    结果:
    - MISSING: 策略文件不存在
    - UNSIGNED: 没有策略清单
    - TAMPER_DETECTED: 清单损坏、文件名不符、密钥缺失或标签不匹配
    - VERIFIED: 标签一致
    """
    source = policy_path(workspace_path)
    try:
        content = source.read_bytes()
    except FileNotFoundError:
        return PolicyVerification.MISSING
    except OSError as e:
        logger.error(f"策略文件无法读取: {source}: {e}")
        return PolicyVerification.TAMPER_DETECTED

    target = manifest_path(state_dir)
    try:
        raw = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return PolicyVerification.UNSIGNED
    except OSError as e:
        logger.error(f"策略清单无法读取: {target}: {e}")
        return PolicyVerification.TAMPER_DETECTED

    try:
        manifest = PolicyManifest.from_dict(json.loads(raw))
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"策略清单已损坏: {e}")
        return PolicyVerification.TAMPER_DETECTED

    if manifest.policy_file != POLICY_FILENAME:
        logger.error(f"策略清单指向其他文件: {manifest.policy_file}")
        return PolicyVerification.TAMPER_DETECTED

    key = read_device_key(state_dir)
    if key is None:
        logger.error("设备密钥缺失，无法校验策略签名")
        return PolicyVerification.TAMPER_DETECTED

    expected = compute_policy_tag(key, POLICY_FILENAME, content)
    # 按字节比较，非 ASCII 的伪造标签同样判为不匹配
    if not hmac.compare_digest(expected.encode("ascii"), manifest.hmac.encode("utf-8")):
        logger.error(f"策略文件签名不匹配: {source}")
        return PolicyVerification.TAMPER_DETECTED

    return PolicyVerification.VERIFIED
