"""Build policy - CMake settings, command lines and argument validation.

Security measures:
- Generator, build type, target and cache variable names are validated
- Path canonicalization with symlink rejection for the build directory
- UNC and device path denial
- Commands are argument vectors, never shell strings
"""

from __future__ import annotations

import os
import re
import shutil
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final


class BuildCommand(str, Enum):
    """Supported CMake invocations."""

    CONFIGURE = "configure"
    BUILD = "build"


DEFAULT_GENERATOR: Final[str] = "Ninja"
DEFAULT_BUILD_TYPE: Final[str] = "Debug"

# Generators producing one build tree for several configurations
MULTI_CONFIG_GENERATORS: Final[tuple[str, ...]] = (
    "Visual Studio",
    "Xcode",
    "Ninja Multi-Config",
)

GENERATOR_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?:Ninja(?: Multi-Config)?|Unix Makefiles|MinGW Makefiles|MSYS Makefiles"
    r"|NMake Makefiles(?: JOM)?|Watcom WMake|Borland Makefiles|Xcode|Green Hills MULTI"
    r"|Visual Studio \d+(?: \d{4})?)$"
)

# Debug, Release, RelWithDebInfo, MinSizeRel or a custom configuration
BUILD_TYPE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")

# NAME or NAME:TYPE (e.g. BUILD_TESTING:BOOL)
VARIABLE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[A-Za-z_][A-Za-z0-9_.+-]*(?::[A-Z]+)?$"
)

# Plain names and namespaced aliases (e.g. fmt::fmt)
TARGET_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_.+\-:]+$")


def resolve_cmake_path(explicit: str | None = None) -> str:
    """Find the cmake executable.

    Order: explicit path, CMAKE_PATH environment variable, PATH lookup.
    Falls back to plain "cmake" so a missing tool surfaces as a spawn failure.
    """
    if explicit:
        return explicit
    env_path = os.environ.get("CMAKE_PATH")
    if env_path:
        return env_path
    return shutil.which("cmake") or "cmake"


@dataclass
class CMakeSettings:
    """User-facing configuration of one CMake build tree."""

    source_directory: str
    build_directory: str | None = None
    cmake_path: str | None = None
    generator: str = DEFAULT_GENERATOR
    build_type: str = DEFAULT_BUILD_TYPE
    toolchain_file: str | None = None
    variables: dict[str, str] = field(default_factory=dict)
    environment: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Canonicalize directories and locate cmake."""
        self.source_directory = os.path.abspath(self.source_directory)
        if not self.build_directory:
            self.build_directory = os.path.join(self.source_directory, "build")
        self.build_directory = os.path.abspath(self.build_directory)
        self.cmake_path = resolve_cmake_path(self.cmake_path)

    @property
    def is_multi_config(self) -> bool:
        return self.generator.startswith(MULTI_CONFIG_GENERATORS)


@dataclass
class BuildPolicy:
    """Security policy for CMake invocations.

    Validates:
    - Directories are not UNC or device paths
    - The build directory is not a symlink
    - Generator, build type, targets and cache variables are well formed
    """

    allow_unc_paths: bool = False
    allow_device_paths: bool = False

    def _validate_path(
        self,
        path: str,
        allow_symlinks: bool = False,
        context: str = "path",
    ) -> str:
        """Validate and canonicalize a path.

        Args:
            path: Path to validate
            allow_symlinks: Whether to allow symlinks (default False)
            context: Context for error messages

        Returns:
            Canonicalized absolute path

        Raises:
            ValueError: If path is invalid or violates security policy
        """
        if not path:
            raise ValueError(f"Empty {context}")

        # Deny device paths (\\?\, \\.\) - check before UNC since they start with \\
        if path.startswith(("\\\\.\\", "\\\\?\\")):
            if not self.allow_device_paths:
                raise ValueError(f"Device paths not allowed in {context}: {path}")

        # Deny UNC paths (\\server\share)
        if path.startswith("\\\\") and not self.allow_unc_paths:
            raise ValueError(f"UNC paths not allowed in {context}: {path}")

        abs_path = os.path.abspath(path)

        if ".." in Path(path).parts:
            resolved = os.path.normpath(abs_path)
            if resolved != abs_path:
                raise ValueError(f"Path traversal detected in {context}: {path}")

        if os.path.lexists(abs_path):
            try:
                attrs = os.lstat(abs_path)
            except OSError as e:
                raise ValueError(f"Cannot access {context}: {path} ({e})") from e
            if stat.S_ISLNK(attrs.st_mode) and not allow_symlinks:
                raise ValueError(f"Symlink not allowed in {context}: {path}")
            # On Windows, junctions are reparse points rather than symlinks
            if hasattr(attrs, "st_file_attributes"):
                FILE_ATTRIBUTE_REPARSE_POINT = 0x400
                if attrs.st_file_attributes & FILE_ATTRIBUTE_REPARSE_POINT and not allow_symlinks:
                    raise ValueError(
                        f"Reparse point (junction/symlink) not allowed in {context}: {path}"
                    )

        return abs_path

    def validate_source_directory(self, source_directory: str) -> str:
        validated = self._validate_path(
            source_directory, allow_symlinks=True, context="source_directory"
        )
        if not os.path.isfile(os.path.join(validated, "CMakeLists.txt")):
            raise ValueError(f"No CMakeLists.txt in source directory: {source_directory}")
        return validated

    def validate_build_directory(self, build_directory: str) -> str:
        return self._validate_path(
            build_directory, allow_symlinks=False, context="build_directory"
        )

    def validate_generator(self, generator: str) -> str:
        if not GENERATOR_PATTERN.match(generator):
            raise ValueError(f"Unsupported generator: {generator}")
        return generator

    def validate_build_type(self, build_type: str) -> str:
        if not BUILD_TYPE_PATTERN.match(build_type):
            raise ValueError(f"Invalid build type: {build_type}")
        return build_type

    def validate_target(self, target: str) -> str:
        if not TARGET_PATTERN.match(target):
            raise ValueError(f"Invalid target name: {target}")
        return target

    def validate_variables(self, variables: dict[str, str]) -> list[str]:
        """Validate cache variables and render them as -D arguments.

        Raises:
            ValueError: If a name is malformed or a value spans lines
        """
        arguments: list[str] = []
        for name, value in variables.items():
            if not VARIABLE_PATTERN.match(name):
                raise ValueError(f"Invalid cache variable name: {name}")
            if "\n" in str(value) or "\r" in str(value):
                raise ValueError(f"Cache variable {name} must not contain line breaks")
            arguments.append(f"-D{name}={value}")
        return arguments

    def get_configure_command(self, settings: CMakeSettings) -> list[str]:
        """Build validated configure command line.

        Returns:
            Complete command line as list; run it with cwd = build directory
        """
        source = self.validate_source_directory(settings.source_directory)
        assert settings.build_directory is not None
        self.validate_build_directory(settings.build_directory)
        generator = self.validate_generator(settings.generator)

        command = [settings.cmake_path or "cmake", "-G", generator]
        if not settings.is_multi_config:
            command.append(f"-DCMAKE_BUILD_TYPE={self.validate_build_type(settings.build_type)}")
        if settings.toolchain_file:
            toolchain = self._validate_path(
                settings.toolchain_file, allow_symlinks=True, context="toolchain_file"
            )
            command.append(f"-DCMAKE_TOOLCHAIN_FILE={toolchain}")
        command.extend(self.validate_variables(settings.variables))
        command.append(source)
        return command

    def get_build_command(
        self,
        settings: CMakeSettings,
        target: str | None = None,
    ) -> list[str]:
        """Build validated ``cmake --build`` command line."""
        assert settings.build_directory is not None
        build_directory = self.validate_build_directory(settings.build_directory)

        command = [settings.cmake_path or "cmake", "--build", build_directory]
        if target:
            command.extend(["--target", self.validate_target(target)])
        if settings.is_multi_config:
            command.extend(["--config", self.validate_build_type(settings.build_type)])
        return command
