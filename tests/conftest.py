"""
Pytest 配置和公共 fixtures

HostGuard 测试配置。
"""

import sys
from pathlib import Path
from typing import Callable

import pytest

# 添加项目根目录到路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from hostguard.system.services.config_center import HostGuardConfig  # noqa: E402


# ============== 临时目录 ==============

@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    """状态目录（工作空间的父目录）"""
    state = tmp_path / "state"
    state.mkdir()
    return state


@pytest.fixture
def temp_workspace(state_dir: Path) -> Path:
    """临时工作空间"""
    workspace = state_dir / "workspace"
    workspace.mkdir()

    # 创建基础结构
    (workspace / "MEMORY.md").write_text("# Memory\nUser prefers dark roast coffee\n")
    (workspace / "memory").mkdir()

    return workspace


@pytest.fixture
def outside_dir(tmp_path: Path) -> Path:
    """允许目录之外的目录"""
    outside = tmp_path / "outside"
    outside.mkdir()
    return outside


# ============== 配置 Fixtures ==============

@pytest.fixture
def make_config(temp_workspace: Path) -> Callable[..., HostGuardConfig]:
    """按需构建配置，默认把允许目录限制在工作空间"""

    def _make(**overrides) -> HostGuardConfig:
        data = {
            "workspace": str(temp_workspace),
            "security": {"allowed_directories": [str(temp_workspace)]},
        }
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return HostGuardConfig(**data)

    return _make


# ============== 环境变量 ==============

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """清理测试环境变量"""
    monkeypatch.setenv("HOSTGUARD_ENV", "test")
