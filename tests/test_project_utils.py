"""Tests for source root detection utilities."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from cmake_mcp.utils.project import (
    ProjectRootConfig,
    configure_project_root,
    find_cmake_source_root,
    get_config,
    get_project_root,
    get_project_root_sync,
    parse_file_uri,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate tests from source root variables and global config."""
    monkeypatch.delenv("CMAKE_MCP_SOURCE_ROOT", raising=False)
    monkeypatch.delenv("MCP_PROJECT_ROOT", raising=False)
    configure_project_root()
    yield
    configure_project_root()


def _context(roots=None, error=None):
    ctx = MagicMock()
    if error is not None:
        ctx.session.list_roots = AsyncMock(side_effect=error)
    else:
        ctx.session.list_roots = AsyncMock(return_value=MagicMock(roots=roots or []))
    return ctx


class TestParseFileUri:
    """Tests for parse_file_uri function."""

    def test_parse_unix_path(self):
        """Test parsing Unix file:// URI."""
        result = parse_file_uri("file:///home/user/project")
        if sys.platform != "win32":
            assert result == Path("/home/user/project")

    def test_parse_windows_path(self):
        """Test parsing Windows file:// URI with drive letter."""
        result = parse_file_uri("file:///C:/Users/project")
        if sys.platform == "win32":
            assert result == Path("C:/Users/project")

    def test_parse_url_encoded_path(self):
        result = parse_file_uri("file:///home/user/my%20project")
        if sys.platform != "win32":
            assert result == Path("/home/user/my project")

    def test_parse_non_file_uri_returns_none(self):
        assert parse_file_uri("http://example.com") is None
        assert parse_file_uri("https://example.com") is None

    def test_parse_invalid_uri_returns_none(self):
        assert parse_file_uri("not a uri") is None

    @pytest.mark.skipif(sys.platform != "win32", reason="Windows-only test")
    def test_parse_windows_unc_path(self):
        result = parse_file_uri("file://server/share/path")
        assert result == Path("\\\\server\\share\\path")


class TestFindCMakeSourceRoot:
    """Tests for find_cmake_source_root function."""

    def test_prefers_presets(self, tmp_path):
        """Test CMakePresets.json marks the top level."""
        (tmp_path / ".git").mkdir()
        (tmp_path / "CMakePresets.json").write_text("{}")
        (tmp_path / "CMakeLists.txt").touch()
        subdir = tmp_path / "src" / "lib"
        subdir.mkdir(parents=True)
        (subdir / "CMakeLists.txt").touch()

        assert find_cmake_source_root(subdir) == tmp_path.resolve()

    def test_outermost_cmakelists(self, tmp_path):
        """Test subdirectory CMakeLists.txt files are skipped."""
        (tmp_path / ".git").mkdir()
        project = tmp_path / "project"
        subdir = project / "lib" / "core"
        subdir.mkdir(parents=True)
        (project / "CMakeLists.txt").touch()
        (project / "lib" / "CMakeLists.txt").touch()
        (subdir / "CMakeLists.txt").touch()

        assert find_cmake_source_root(subdir) == project.resolve()

    def test_stops_at_git_root(self, tmp_path):
        """Test CMakeLists.txt above the repository is ignored."""
        (tmp_path / "CMakeLists.txt").touch()
        repo = tmp_path / "repo"
        (repo / ".git").mkdir(parents=True)
        (repo / "CMakeLists.txt").touch()
        subdir = repo / "src"
        subdir.mkdir()

        assert find_cmake_source_root(subdir) == repo.resolve()

    def test_git_root_fallback(self, tmp_path):
        (tmp_path / ".git").mkdir()
        subdir = tmp_path / "docs"
        subdir.mkdir()

        assert find_cmake_source_root(subdir) == tmp_path.resolve()

    def test_falls_back_to_start_dir(self, tmp_path):
        (tmp_path / ".git").mkdir()
        assert find_cmake_source_root(tmp_path) == tmp_path.resolve()

    def test_uses_cwd_by_default(self, tmp_path, monkeypatch):
        (tmp_path / ".git").mkdir()
        (tmp_path / "CMakeLists.txt").touch()
        monkeypatch.chdir(tmp_path)

        assert find_cmake_source_root() == tmp_path.resolve()


class TestProjectRootConfig:
    """Tests for ProjectRootConfig dataclass."""

    def test_default_config(self):
        config = ProjectRootConfig()
        assert config.startup_cwd is None
        assert config.use_source_from_cwd is False
        assert config.explicit_source_path is None
        assert "CMAKE_MCP_SOURCE_ROOT" in config.env_var_names

    def test_configure_project_root(self, tmp_path):
        """Test configure_project_root sets global config."""
        configure_project_root(
            use_source_from_cwd=True,
            explicit_source_path=str(tmp_path),
            startup_cwd=str(tmp_path),
        )

        config = get_config()
        assert config.use_source_from_cwd is True
        assert config.explicit_source_path == tmp_path
        assert config.startup_cwd == tmp_path


class TestGetProjectRootSync:
    """Tests for get_project_root_sync function."""

    def test_returns_none_when_no_config(self):
        assert get_project_root_sync() is None

    def test_returns_explicit_path(self, tmp_path):
        configure_project_root(explicit_source_path=str(tmp_path))
        assert get_project_root_sync() == tmp_path

    def test_invalid_explicit_path_skipped(self, tmp_path):
        configure_project_root(explicit_source_path=str(tmp_path / "missing"))
        assert get_project_root_sync() is None

    def test_returns_cwd_with_marker_search(self, tmp_path):
        """Test --source-from-cwd searches upward from the startup CWD."""
        (tmp_path / ".git").mkdir()
        (tmp_path / "CMakeLists.txt").touch()
        subdir = tmp_path / "src"
        subdir.mkdir()

        configure_project_root(use_source_from_cwd=True, startup_cwd=str(subdir))

        assert get_project_root_sync() == tmp_path.resolve()

    def test_startup_cwd_without_search(self, tmp_path):
        configure_project_root(startup_cwd=str(tmp_path))
        assert get_project_root_sync() == tmp_path

    def test_env_var_takes_precedence(self, tmp_path, monkeypatch):
        env_path = tmp_path / "env_project"
        env_path.mkdir()
        monkeypatch.setenv("CMAKE_MCP_SOURCE_ROOT", str(env_path))

        configure_project_root(explicit_source_path=str(tmp_path), startup_cwd=str(tmp_path))

        assert get_project_root_sync() == env_path

    def test_mcp_project_root_env_var(self, tmp_path, monkeypatch):
        env_path = tmp_path / "mcp_project"
        env_path.mkdir()
        monkeypatch.setenv("MCP_PROJECT_ROOT", str(env_path))

        assert get_project_root_sync() == env_path

    def test_invalid_env_var_skipped(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CMAKE_MCP_SOURCE_ROOT", str(tmp_path / "missing"))
        configure_project_root(startup_cwd=str(tmp_path))

        assert get_project_root_sync() == tmp_path


class TestGetProjectRoot:
    """Tests for async get_project_root function."""

    @pytest.mark.asyncio
    async def test_returns_none_when_no_sources(self):
        assert await get_project_root(_context()) is None

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX file URI")
    async def test_uses_mcp_root_when_available(self, tmp_path):
        root = MagicMock()
        root.uri = f"file://{tmp_path.as_posix()}"

        assert await get_project_root(_context([root])) == tmp_path

    @pytest.mark.asyncio
    async def test_invalid_mcp_root_falls_back(self, tmp_path):
        root = MagicMock()
        root.uri = "https://example.com/repo"
        configure_project_root(startup_cwd=str(tmp_path))

        assert await get_project_root(_context([root])) == tmp_path

    @pytest.mark.asyncio
    async def test_falls_back_to_env_var(self, tmp_path, monkeypatch):
        """Test falls back to env var when MCP roots fail."""
        env_path = tmp_path / "env_project"
        env_path.mkdir()
        monkeypatch.setenv("CMAKE_MCP_SOURCE_ROOT", str(env_path))

        result = await get_project_root(_context(error=Exception("Not supported")))

        assert result == env_path

    @pytest.mark.asyncio
    async def test_works_without_context(self, tmp_path):
        configure_project_root(explicit_source_path=str(tmp_path))

        assert await get_project_root(None) == tmp_path
