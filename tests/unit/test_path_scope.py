"""
路径解析与范围检查单元测试
"""

import os
from pathlib import Path

import pytest

from hostguard.agent.security.errors import PathDenied
from hostguard.agent.security.path_scope import (
    canonicalize_allowed_directories,
    check_path_allowed,
    is_within,
    resolve_real_path,
)


class TestResolveRealPath:
    """路径解析测试"""

    def test_existing_file(self, tmp_path: Path):
        target = tmp_path / "a.txt"
        target.write_text("x")
        assert resolve_real_path(str(target)) == target.resolve()

    def test_expands_home(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / "notes.md").write_text("x")
        assert resolve_real_path("~/notes.md") == (tmp_path / "notes.md").resolve()

    def test_new_file_resolves_parent_symlink(self, tmp_path: Path):
        """新文件：父目录的符号链接仍被解析"""
        real_dir = tmp_path / "real"
        real_dir.mkdir()
        link = tmp_path / "link"
        link.symlink_to(real_dir)

        resolved = resolve_real_path(str(link / "new.txt"))
        assert resolved == real_dir.resolve() / "new.txt"

    def test_symlink_to_outside_resolved(self, tmp_path: Path):
        outside = tmp_path / "outside.txt"
        outside.write_text("secret")
        ws = tmp_path / "ws"
        ws.mkdir()
        (ws / "innocent.txt").symlink_to(outside)

        assert resolve_real_path(str(ws / "innocent.txt")) == outside.resolve()

    def test_dangling_symlink_resolves_to_target(self, tmp_path: Path):
        """悬空链接解析为链接目标，而不是链接自身"""
        ws = tmp_path / "ws"
        ws.mkdir()
        target = tmp_path / "elsewhere" / "new.txt"
        (ws / "link.txt").symlink_to(target)

        resolved = resolve_real_path(str(ws / "link.txt"))
        assert resolved == Path(os.path.realpath(target))
        assert not is_within(resolved, ws.resolve())

    def test_missing_parent_normalizes_dotdot(self, tmp_path: Path):
        """父目录不存在时，.. 仍被规范化，不能绕过范围检查"""
        ws = tmp_path / "ws"
        ws.mkdir()
        sneaky = f"{ws}/missing/../../escape.txt"

        resolved = resolve_real_path(sneaky)
        assert ".." not in resolved.parts
        assert not is_within(resolved, ws.resolve())


class TestCheckPathAllowed:
    """范围检查测试"""

    def test_empty_allows_everything(self):
        check_path_allowed(Path("/etc/passwd"), ())
        check_path_allowed(Path("/"), [])

    def test_inside_allowed(self):
        check_path_allowed(Path("/ws/project/file.txt"), (Path("/ws"),))

    def test_directory_itself_allowed(self):
        check_path_allowed(Path("/ws"), (Path("/ws"),))

    def test_outside_denied(self):
        with pytest.raises(PathDenied) as exc:
            check_path_allowed(Path("/etc/passwd"), (Path("/workspace"),))
        assert "/etc/passwd" in exc.value.message

    def test_sibling_prefix_denied(self):
        """/ws 不能放行 /workspace2"""
        with pytest.raises(PathDenied):
            check_path_allowed(Path("/workspace2/file"), (Path("/workspace"),))
        with pytest.raises(PathDenied):
            check_path_allowed(Path("/ws2"), (Path("/ws"),))

    def test_any_of_multiple(self):
        allowed = (Path("/a"), Path("/b"))
        check_path_allowed(Path("/b/c"), allowed)
        with pytest.raises(PathDenied):
            check_path_allowed(Path("/c"), allowed)


class TestCanonicalizeAllowedDirectories:
    """允许目录规范化测试"""

    def test_resolves_symlinks(self, tmp_path: Path):
        real = tmp_path / "real"
        real.mkdir()
        link = tmp_path / "link"
        link.symlink_to(real)

        assert canonicalize_allowed_directories([str(link)]) == (real.resolve(),)

    def test_missing_directory_kept(self, tmp_path: Path):
        """不存在的目录仍保留，配置不会退化为不限制"""
        missing = tmp_path / "not-yet"
        result = canonicalize_allowed_directories([str(missing)])

        assert len(result) == 1
        assert result[0] == Path(os.path.realpath(missing))
        with pytest.raises(PathDenied):
            check_path_allowed(Path("/etc/passwd"), result)
