"""Immutable project model built from File API replies.

A ``ProjectSnapshot`` is never modified after construction. A new configure
produces a new snapshot that replaces the old one as a whole.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class TargetType(str, Enum):
    """CMake target artifact kinds."""

    EXECUTABLE = "EXECUTABLE"
    STATIC_LIBRARY = "STATIC_LIBRARY"
    SHARED_LIBRARY = "SHARED_LIBRARY"
    MODULE_LIBRARY = "MODULE_LIBRARY"
    OBJECT_LIBRARY = "OBJECT_LIBRARY"
    INTERFACE_LIBRARY = "INTERFACE_LIBRARY"
    UTILITY = "UTILITY"


@dataclass(frozen=True)
class IncludePath:
    path: str
    is_system: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "isSystem": self.is_system}


@dataclass(frozen=True)
class CompileGroup:
    """Sources of one target sharing language and compiler settings."""

    language: str
    compiler_path: str = ""
    compile_flags: str = ""
    sources: tuple[str, ...] = ()
    defines: tuple[str, ...] = ()
    include_paths: tuple[IncludePath, ...] = ()
    language_standard: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "language": self.language,
            "compilerPath": self.compiler_path,
            "compileFlags": self.compile_flags,
            "sources": list(self.sources),
            "defines": list(self.defines),
            "includePaths": [inc.to_dict() for inc in self.include_paths],
        }
        if self.language_standard:
            result["languageStandard"] = self.language_standard
        return result


@dataclass(frozen=True)
class Target:
    name: str
    type: TargetType
    source_directory: str
    compile_groups: tuple[CompileGroup, ...] = ()
    id: str = ""

    @property
    def sources(self) -> list[str]:
        return [source for group in self.compile_groups for source in group.sources]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "type": self.type.value,
            "sourceDirectory": self.source_directory,
            "compileGroups": [group.to_dict() for group in self.compile_groups],
        }


@dataclass(frozen=True)
class Project:
    name: str
    targets: tuple[Target, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "targets": [t.name for t in self.targets]}


@dataclass(frozen=True)
class CacheEntry:
    """A persisted CMake cache variable."""

    name: str
    value: str
    type: str
    help_string: str = ""
    advanced: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "value": self.value, "type": self.type}
        if self.help_string:
            result["helpString"] = self.help_string
        if self.advanced:
            result["advanced"] = True
        return result


@dataclass(frozen=True)
class CMakeInput:
    """A file CMake read while configuring (from ``cmakeFiles-v1``)."""

    path: str
    is_generated: bool = False
    is_external: bool = False
    is_cmake: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "isGenerated": self.is_generated,
            "isExternal": self.is_external,
            "isCMake": self.is_cmake,
        }


def _empty_cache() -> Mapping[str, CacheEntry]:
    return MappingProxyType({})


@dataclass(frozen=True)
class ProjectSnapshot:
    """Complete model of one successful reply read."""

    projects: tuple[Project, ...] = ()
    targets: tuple[Target, ...] = ()
    cache: Mapping[str, CacheEntry] = field(default_factory=_empty_cache)
    inputs: tuple[CMakeInput, ...] = ()
    configuration: str = ""
    source_directory: str = ""
    build_directory: str = ""
    index_file: str = ""
    cmake_version: str = ""
    generator: str = ""
    multi_config: bool = False

    def get_target(self, name: str) -> Target | None:
        for target in self.targets:
            if target.name == name:
                return target
        return None

    def get_cache_value(self, name: str, default: str | None = None) -> str | None:
        entry = self.cache.get(name)
        return entry.value if entry is not None else default

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "configuration": self.configuration,
            "sourceDirectory": self.source_directory,
            "buildDirectory": self.build_directory,
            "indexFile": self.index_file,
            "cmakeVersion": self.cmake_version,
            "generator": self.generator,
            "multiConfig": self.multi_config,
            "projects": [p.to_dict() for p in self.projects],
            "targets": [t.to_dict() for t in self.targets],
            "inputs": [i.to_dict() for i in self.inputs],
        }
