"""Source file configurations for C/C++ language tooling.

Maps every C and C++ source of the current project model to the include
paths, defines, language standard and compiler it is built with.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from dataclasses import dataclass, field
from typing import Any

from ..fileapi import CompileGroup, ModelStore, ProjectSnapshot

logger = logging.getLogger(__name__)

PROVIDER_NAME = "CMake Integration"

SUPPORTED_LANGUAGES = ("C", "CXX")

_GCC_COMPILER = re.compile(r"(?:^|[-_])(?:gcc|g\+\+|cc|c\+\+|clang|clang\+\+)(?:-[\d.]+)?(?:\.exe)?$", re.IGNORECASE)
_CL_COMPILER = re.compile(r"^cl(?:\.exe)?$", re.IGNORECASE)

_GCC_STD = re.compile(r"-std=((?:iso9899:|(?:gnu|c)(?:\+\+)?)\w+)")
_CL_STD = re.compile(r"[/-]std:(c\+\+\w+|c\d+)", re.IGNORECASE)

GCC_STANDARDS: dict[str, str] = {
    "c89": "c89",
    "c90": "c99",
    "iso9899:1990": "c99",
    "iso9899:199409": "c99",
    "c99": "c99",
    "c9x": "c99",
    "iso9899:1999": "c99",
    "iso9899:199x": "c99",
    "c11": "c11",
    "c1x": "c11",
    "iso9899:2011": "c11",
    "c17": "c17",
    "c18": "c17",
    "iso9899:2017": "c17",
    "iso9899:2018": "c17",
    "gnu89": "c89",
    "gnu90": "c99",
    "gnu99": "c99",
    "gnu9x": "c99",
    "gnu11": "c11",
    "gnu1x": "c11",
    "gnu17": "c17",
    "gnu18": "c17",
    "c++98": "c++98",
    "c++03": "c++03",
    "gnu++98": "c++98",
    "gnu++03": "c++03",
    "c++11": "c++11",
    "c++0x": "c++11",
    "gnu++11": "c++11",
    "gnu++0x": "c++11",
    "c++14": "c++14",
    "c++1y": "c++14",
    "gnu++14": "c++14",
    "gnu++1y": "c++14",
    "c++17": "c++17",
    "c++1z": "c++17",
    "gnu++17": "c++17",
    "gnu++1z": "c++17",
    "c++20": "c++20",
    "c++2a": "c++20",
    "gnu++20": "c++20",
    "gnu++2a": "c++20",
}

CL_STANDARDS: dict[str, str] = {
    "c++14": "c++14",
    "c++17": "c++17",
    "c++20": "c++20",
    "c++latest": "c++20",
    "c11": "c11",
    "c17": "c17",
}


def _compiler_name(compiler: str) -> str:
    return os.path.basename(compiler.replace("\\", "/"))


def _is_c(language: str | None) -> bool:
    return (language or "").upper() == "C"


def get_standard(compiler: str, flags: str, language: str | None = None) -> str:
    """Derive the language standard from compiler and flags.

    Args:
        compiler: Compiler executable path
        flags: Compile flags as one string
        language: "C" or "CXX"; C++ is assumed when not given

    Returns:
        Standard such as "c11" or "c++17"
    """
    name = _compiler_name(compiler)

    if _CL_COMPILER.match(name):
        match = _CL_STD.search(flags)
        if match and match.group(1).lower() in CL_STANDARDS:
            return CL_STANDARDS[match.group(1).lower()]
        return "c89" if _is_c(language) else "c++14"

    if _GCC_COMPILER.search(name):
        match = _GCC_STD.search(flags)
        if match and match.group(1) in GCC_STANDARDS:
            return GCC_STANDARDS[match.group(1)]
        return "c11" if _is_c(language) else "c++14"

    return "c++17"


def get_intellisense_mode(compiler: str) -> str:
    name = _compiler_name(compiler).lower()
    if _CL_COMPILER.match(name):
        return "msvc-x64"
    if "clang" in name:
        return "clang-x64"
    return "gcc-x64"


def _split_flags(flags: str) -> list[str]:
    if not flags:
        return []
    try:
        return shlex.split(flags, posix=os.name != "nt")
    except ValueError:
        return flags.split()


@dataclass(frozen=True)
class SourceFileConfiguration:
    """How one source file is compiled."""

    include_paths: tuple[str, ...]
    defines: tuple[str, ...]
    standard: str
    compiler_path: str = ""
    compiler_args: tuple[str, ...] = ()
    intellisense_mode: str = "gcc-x64"
    target: str = ""

    @classmethod
    def from_compile_group(cls, group: CompileGroup, target: str = "") -> SourceFileConfiguration:
        if group.language_standard:
            prefix = "c" if _is_c(group.language) else "c++"
            standard = f"{prefix}{group.language_standard}"
        else:
            standard = get_standard(group.compiler_path, group.compile_flags, group.language)
        return cls(
            include_paths=tuple(inc.path for inc in group.include_paths),
            defines=group.defines,
            standard=standard,
            compiler_path=group.compiler_path,
            compiler_args=tuple(_split_flags(group.compile_flags)),
            intellisense_mode=get_intellisense_mode(group.compiler_path),
            target=target,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "includePath": list(self.include_paths),
            "defines": list(self.defines),
            "standard": self.standard,
            "compilerPath": self.compiler_path,
            "compilerArgs": list(self.compiler_args),
            "intelliSenseMode": self.intellisense_mode,
            "target": self.target,
        }


@dataclass(frozen=True)
class BrowseConfiguration:
    browse_path: tuple[str, ...] = ()
    standard: str | None = None
    compiler_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "browsePath": list(self.browse_path),
            "standard": self.standard,
            "compilerPath": self.compiler_path,
        }


@dataclass
class SourceFileConfigurationProvider:
    """Answers per-file configuration queries from the published model.

    The map is rebuilt wholesale on every new snapshot. A file listed by
    several targets keeps the configuration of the first target.
    """

    name: str = PROVIDER_NAME
    _files: dict[str, SourceFileConfiguration] = field(default_factory=dict)
    _browse: BrowseConfiguration | None = None

    def attach(self, store: ModelStore) -> None:
        """Follow a model store; loads its current snapshot immediately."""
        store.on_model_change(self.update_model)
        if store.snapshot is not None:
            self.update_model(store.snapshot)

    @staticmethod
    def _key(path: str) -> str:
        return os.path.normcase(os.path.normpath(os.path.abspath(path)))

    def update_model(self, snapshot: ProjectSnapshot) -> None:
        files: dict[str, SourceFileConfiguration] = {}
        browse_paths: set[str] = set()
        standard: str | None = None
        compiler_path: str | None = None

        for target in snapshot.targets:
            for group in target.compile_groups:
                if group.language not in SUPPORTED_LANGUAGES:
                    continue
                configuration = SourceFileConfiguration.from_compile_group(group, target.name)
                browse_paths.update(configuration.include_paths)
                if group.language == "CXX" and standard is None:
                    standard = configuration.standard
                    compiler_path = configuration.compiler_path or None
                for source in group.sources:
                    files.setdefault(self._key(source), configuration)

        self._files = files
        self._browse = BrowseConfiguration(
            browse_path=tuple(sorted(browse_paths)),
            standard=standard,
            compiler_path=compiler_path,
        )
        logger.info(f"Source configurations updated: {len(files)} files")

    def clear(self) -> None:
        self._files = {}
        self._browse = None

    def can_provide(self, path: str) -> bool:
        return self._key(path) in self._files

    def provide(self, paths: list[str]) -> dict[str, SourceFileConfiguration]:
        """Configurations for the given files; unknown files are omitted."""
        result: dict[str, SourceFileConfiguration] = {}
        for path in paths:
            configuration = self._files.get(self._key(path))
            if configuration is not None:
                result[path] = configuration
        return result

    def can_provide_browse_configuration(self) -> bool:
        return self._browse is not None

    def browse_configuration(self) -> BrowseConfiguration | None:
        return self._browse

    def __len__(self) -> int:
        return len(self._files)
