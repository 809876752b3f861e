"""
路径解析与目录范围检查

所有带路径参数的工具都先调用 resolve_real_path，之后的过滤、
范围检查和实际 I/O 都使用解析后的路径，而不是原始输入。
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Sequence, Tuple

from hostguard.agent.security.errors import PathDenied
from hostguard.system.services.logger import get_logger

logger = get_logger(__name__)


def expand_home(path: str) -> str:
    """展开开头的 ~"""
    return os.path.expanduser(path)


def resolve_real_path(path: str) -> Path:
    """
    把用户提供的路径解析为真实路径

    流程:
    1. 展开 ~，对已存在路径做完全规范化（解析所有符号链接）
    2. 悬空符号链接：按链接目标解析
    3. 新文件：规范化父目录后拼接文件名
    4. 父目录也不存在：尽力解析（已存在的前缀照样解析符号链接，
       其余部分按字面规范化 ..）

    Args:
        path: 原始路径

    Returns:
        解析后的路径
    """
    expanded = Path(expand_home(path))

    try:
        return expanded.resolve(strict=True)
    except (OSError, RuntimeError):
        pass

    # 悬空符号链接：写入会跟随链接创建目标文件，必须按目标检查
    if expanded.is_symlink():
        return Path(os.path.realpath(expanded))

    name = expanded.name
    if name not in ("", ".", ".."):
        try:
            return expanded.parent.resolve(strict=True) / name
        except (OSError, RuntimeError):
            pass

    try:
        return Path(os.path.realpath(expanded))
    except (OSError, ValueError):
        logger.debug(f"路径无法规范化，使用展开后的原始值: {expanded}")
        return expanded


def is_within(real_path: Path, directory: Path) -> bool:
    """按路径组件判断 directory 是否是 real_path 的祖先（或自身）"""
    dir_parts = directory.parts
    return real_path.parts[: len(dir_parts)] == dir_parts


def check_path_allowed(real_path: Path, allowed_dirs: Sequence[Path]) -> None:
    """
    检查路径是否在允许目录内

    allowed_dirs 为空表示不限制。比较基于路径组件，
    因此 /ws 不会放行 /workspace2。

    Raises:
        PathDenied: 路径不在任何允许目录内
    """
    if not allowed_dirs:
        return

    for directory in allowed_dirs:
        if is_within(real_path, directory):
            return

    raise PathDenied(str(real_path))


def canonicalize_allowed_directories(dirs: Iterable[str]) -> Tuple[Path, ...]:
    """
    规范化配置中的允许目录

    不存在的目录仍按尽力解析的结果保留（记录警告），
    非空配置永远不会退化为“不限制”。
    """
    result = []
    for entry in dirs:
        expanded = Path(expand_home(entry))
        try:
            result.append(expanded.resolve(strict=True))
        except (OSError, RuntimeError):
            logger.warning(f"允许目录不存在: {entry}")
            result.append(Path(os.path.realpath(expanded)))
    return tuple(result)
