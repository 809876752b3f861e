"""
配置中心

加载 YAML 配置并解析为不可变的配置对象。
支持从.env文件加载环境变量，以及 ${VAR} / $VAR 引用展开。
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from hostguard.agent.security.tool_filters import ToolFilter
from hostguard.system.services.logger import get_logger

logger = get_logger(__name__)

DEFAULT_WORKSPACE = "~/.hostguard/workspace"
DEFAULT_CONFIG_PATH = "~/.hostguard/config.yaml"


def load_dotenv(env_path: Optional[Path] = None) -> bool:
    """
    加载.env文件中的环境变量

    只设置未定义的环境变量，不覆盖已有值。

    Args:
        env_path: .env文件路径，默认为当前目录下的.env

    Returns:
        是否成功加载
    """
    env_path = env_path or Path.cwd() / ".env"
    if not env_path.exists():
        logger.debug(f".env文件不存在: {env_path}")
        return False

    logger.info(f"加载环境变量文件: {env_path}")

    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()

                # 跳过空行和注释
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()

                # 移除引号
                if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                    value = value[1:-1]

                if key and key not in os.environ:
                    os.environ[key] = value
        return True
    except OSError as e:
        logger.warning(f"加载.env文件失败: {e}")
        return False


_ENV_REF = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def expand_env_vars(value: Any) -> Any:
    """
    展开字符串中的环境变量引用

    未定义的变量保持原样。
    """
    if isinstance(value, str):
        def replace(match):
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, match.group(0))

        return _ENV_REF.sub(replace, value)
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


class ToolsConfig(BaseModel):
    """工具配置"""
    model_config = ConfigDict(frozen=True)

    filters: Dict[str, ToolFilter] = Field(default_factory=dict)
    bash_timeout_ms: int = Field(default=120000, gt=0)
    web_fetch_max_bytes: int = Field(default=10000, gt=0)
    web_fetch_timeout_s: float = Field(default=30.0, gt=0)


class SecurityConfig(BaseModel):
    """安全配置"""
    model_config = ConfigDict(frozen=True)

    # 为空表示不限制
    allowed_directories: List[str] = Field(default_factory=list)
    strict_policy: bool = False
    env_deny_patterns: List[str] = Field(default_factory=list)
    redact_output: bool = True


class HostGuardConfig(BaseModel):
    """HostGuard 完整配置"""
    model_config = ConfigDict(frozen=True)

    workspace: str = DEFAULT_WORKSPACE
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    def workspace_path(self) -> Path:
        """展开 ~ 后的工作空间路径"""
        return Path(os.path.expanduser(self.workspace))

    def state_dir(self) -> Path:
        """状态目录：工作空间的父目录"""
        return self.workspace_path().parent


def load_config(config_path: Optional[Path] = None) -> HostGuardConfig:
    """
    同步加载配置

    流程:
    1. 加载配置目录下的.env文件
    2. 加载YAML配置文件（不存在时使用默认配置）
    3. 展开配置中的环境变量引用
    4. 解析为配置对象
    """
    path = Path(os.path.expanduser(str(config_path or DEFAULT_CONFIG_PATH)))
    load_dotenv(path.parent / ".env")

    raw: Dict[str, Any] = {}
    if path.exists():
        logger.info(f"加载配置文件: {path}")
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.warning(f"配置文件不存在，使用默认配置: {path}")

    return HostGuardConfig(**expand_env_vars(raw))


class ConfigCenter:
    """
    配置中心

    负责加载和重载配置；加载后的配置对象只读，可在并发工具调用间共享。
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(os.path.expanduser(config_path or DEFAULT_CONFIG_PATH))
        self._config: Optional[HostGuardConfig] = None

    async def load(self) -> HostGuardConfig:
        self._config = load_config(self.config_path)
        return self._config

    async def reload(self) -> HostGuardConfig:
        """重新加载配置（已构建的工具不受影响，需要重新创建）"""
        logger.info("重新加载配置...")
        return await self.load()

    @property
    def config(self) -> HostGuardConfig:
        """获取当前配置"""
        if self._config is None:
            raise RuntimeError("配置尚未加载，请先调用 load()")
        return self._config
