"""
API 令牌

供外部 HTTP 服务做 Bearer 认证的令牌，首次使用时生成，
保存在 <state_dir>/.api_token（权限 0600）。
"""

from __future__ import annotations

import base64
import os
from pathlib import Path
from typing import Union

from hostguard.system.services.logger import get_logger

logger = get_logger(__name__)

API_TOKEN_FILENAME = ".api_token"
TOKEN_BYTES = 32


def api_token_path(state_dir: Union[str, Path]) -> Path:
    """令牌文件路径"""
    return Path(state_dir) / API_TOKEN_FILENAME


def generate_token() -> str:
    """32 字节随机数，base64url 编码、无填充"""
    return base64.urlsafe_b64encode(os.urandom(TOKEN_BYTES)).rstrip(b"=").decode("ascii")


def ensure_api_token(state_dir: Union[str, Path]) -> str:
    """
    读取或生成 API 令牌

    已有文件内容为空时重新生成。

    Args:
        state_dir: 状态目录

    Returns:
        令牌字符串
    """
    path = api_token_path(state_dir)
    if path.exists():
        token = path.read_text(encoding="utf-8").strip()
        if token:
            return token

    path.parent.mkdir(parents=True, exist_ok=True)
    token = generate_token()

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(token)
    # 文件已存在时 os.open 不会修改权限
    os.chmod(path, 0o600)

    logger.info(f"API 令牌已生成: {path}")
    return token
