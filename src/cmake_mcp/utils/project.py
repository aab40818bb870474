"""Source root detection utilities.

Provides utilities for determining the CMake source directory from multiple sources:
1. MCP Roots from client (via Context.list_roots())
2. Environment variables (CMAKE_MCP_SOURCE_ROOT, MCP_PROJECT_ROOT)
3. Explicit --source path
4. Startup CWD (when --source-from-cwd is used)
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

if TYPE_CHECKING:
    from mcp.server.fastmcp import Context

logger = logging.getLogger(__name__)


@dataclass
class ProjectRootConfig:
    """Configuration for source root detection."""

    startup_cwd: Path | None = None
    """CWD captured at server startup."""

    use_source_from_cwd: bool = False
    """Whether --source-from-cwd flag was provided."""

    explicit_source_path: Path | None = None
    """Explicit source path from --source flag."""

    env_var_names: tuple[str, ...] = field(
        default_factory=lambda: ("CMAKE_MCP_SOURCE_ROOT", "MCP_PROJECT_ROOT")
    )
    """Environment variable names to check for the source root."""


# Global configuration (set at startup)
_config: ProjectRootConfig = ProjectRootConfig()


def configure_project_root(
    *,
    use_source_from_cwd: bool = False,
    explicit_source_path: str | Path | None = None,
    startup_cwd: str | Path | None = None,
) -> None:
    """Configure source root detection.

    Should be called once at server startup.
    """
    global _config
    _config = ProjectRootConfig(
        use_source_from_cwd=use_source_from_cwd,
        explicit_source_path=Path(explicit_source_path) if explicit_source_path else None,
        startup_cwd=Path(startup_cwd) if startup_cwd else None,
    )
    logger.debug(
        f"Source root configured: use_cwd={use_source_from_cwd}, "
        f"explicit={explicit_source_path}, startup_cwd={startup_cwd}"
    )


def get_config() -> ProjectRootConfig:
    """Get current source root configuration."""
    return _config


def parse_file_uri(uri: str) -> Path | None:
    """Parse a file:// URI to a Path.

    Handles platform-specific path formats:
    - Unix: file:///home/user/project → /home/user/project
    - Windows: file:///C:/Users/project → C:\\Users\\project
    - Windows UNC: file://server/share → \\\\server\\share

    Returns:
        Path object if parsing succeeds, None otherwise
    """
    parsed = urlparse(str(uri))

    if parsed.scheme != "file":
        logger.warning(f"Not a file URI: {uri}")
        return None

    path_str = unquote(parsed.path)

    if sys.platform == "win32":
        # file:///C:/path → parsed.path = "/C:/path"
        if path_str.startswith("/") and len(path_str) > 2 and path_str[2] == ":":
            path_str = path_str[1:]

        if parsed.netloc:
            path_str = f"\\\\{parsed.netloc}{path_str}"

    path = Path(path_str)
    if not path.is_absolute():
        logger.warning(f"Parsed path is not absolute: {path}")
        return None

    return path


def find_cmake_source_root(start_dir: Path | None = None) -> Path:
    """Find the top-level CMake source directory by walking up.

    Searches in this order:
    1. CMakePresets.json (only ever placed at the top level)
    2. The outermost CMakeLists.txt below the enclosing git root
    3. .git (git root as fallback)

    Falls back to start_dir if no marker is found.
    """
    current = (start_dir or Path.cwd()).resolve()

    def ancestors() -> Iterator[Path]:
        """Yield current directory and ancestors up to the git root."""
        yield current
        if (current / ".git").exists():
            return
        for parent in current.parents:
            yield parent
            if (parent / ".git").exists():
                return

    for directory in ancestors():
        if (directory / "CMakePresets.json").is_file():
            return directory

    outermost: Path | None = None
    for directory in ancestors():
        if (directory / "CMakeLists.txt").is_file():
            outermost = directory
    if outermost is not None:
        return outermost

    for directory in ancestors():
        if (directory / ".git").exists():
            return directory

    return current


async def get_project_root(ctx: Context | None = None) -> Path | None:
    """Determine the CMake source directory from available sources.

    Priority order:
    1. MCP Roots from client (via ctx.list_roots()) - if client supports it
    2. Environment variable (CMAKE_MCP_SOURCE_ROOT or MCP_PROJECT_ROOT)
    3. Explicit --source path (if configured)
    4. Startup CWD with CMake marker search (if --source-from-cwd)
    5. Startup CWD

    Args:
        ctx: MCP Context for accessing client-provided roots.
             Can be None if called outside of tool context.

    Returns:
        Path to source root, or None if not determinable
    """
    # 1. MCP Roots from client
    if ctx is not None:
        try:
            result = await ctx.session.list_roots()
            roots = result.roots
            logger.info(f"MCP list_roots() returned {len(roots)} roots")
            if roots:
                uri = str(roots[0].uri)
                path = parse_file_uri(uri)
                if path and path.is_dir():
                    logger.info(f"Using source root from MCP client: {path}")
                    return path
                logger.warning(f"MCP root path invalid or not accessible: {uri}")
        except Exception as e:
            # Client may not support roots
            logger.info(f"Could not get roots from client: {e}")

    return get_project_root_sync()


def get_project_root_sync() -> Path | None:
    """Synchronous version of get_project_root (without MCP roots).

    Use this when you don't have access to MCP Context, e.g., at startup.
    """
    config = get_config()

    for env_var in config.env_var_names:
        env_value = os.environ.get(env_var)
        if env_value:
            path = Path(env_value)
            if path.is_dir():
                logger.info(f"Using source root from {env_var}: {path}")
                return path
            logger.warning(f"{env_var}={env_value} - path does not exist or is not a directory")

    if config.explicit_source_path:
        if config.explicit_source_path.is_dir():
            return config.explicit_source_path
        logger.warning(f"Explicit source path not valid: {config.explicit_source_path}")

    if config.use_source_from_cwd and config.startup_cwd:
        source_root = find_cmake_source_root(config.startup_cwd)
        logger.info(f"Using source root from CWD search: {source_root}")
        return source_root

    if config.startup_cwd:
        return config.startup_cwd

    logger.warning("Could not determine source root from any source")
    return None
