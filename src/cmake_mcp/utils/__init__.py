"""Utility modules for cmake-mcp."""

from .project import (
    ProjectRootConfig,
    configure_project_root,
    find_cmake_source_root,
    get_project_root,
    parse_file_uri,
)
from .version import (
    VersionCompatibility,
    VersionInfo,
    check_file_api_support,
    get_cmake_version,
)

__all__ = [
    "configure_project_root",
    "find_cmake_source_root",
    "get_project_root",
    "parse_file_uri",
    "ProjectRootConfig",
    "VersionInfo",
    "VersionCompatibility",
    "check_file_api_support",
    "get_cmake_version",
]
