"""CMake version detection and File API compatibility checking."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# First release with the File API (codemodel-v2, cache-v2, cmakeFiles-v1)
FILE_API_MINIMUM = (3, 14, 0)

# First release reporting languageStandard in compile groups
LANGUAGE_STANDARD_MINIMUM = (3, 24, 0)


@dataclass
class VersionInfo:
    """Version information with major.minor.patch components."""

    major: int
    minor: int
    patch: int
    suffix: str = ""
    raw: str = ""

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.suffix}" if self.suffix else base

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @classmethod
    def from_string(cls, version_str: str) -> VersionInfo | None:
        """Parse version from string like '3.28.1' or '3.30.0-rc2'."""
        if not version_str:
            return None

        match = re.search(r"(\d+)\.(\d+)(?:\.(\d+))?(?:-(\w+))?", version_str)
        if not match:
            return None

        return cls(
            major=int(match.group(1)),
            minor=int(match.group(2)),
            patch=int(match.group(3) or 0),
            suffix=match.group(4) or "",
            raw=version_str,
        )

    @classmethod
    def from_fileapi(cls, version: dict[str, Any]) -> VersionInfo | None:
        """Parse the ``cmake.version`` object of a reply index."""
        try:
            return cls(
                major=int(version["major"]),
                minor=int(version["minor"]),
                patch=int(version.get("patch", 0)),
                suffix=str(version.get("suffix", "")),
                raw=str(version.get("string", "")),
            )
        except (KeyError, TypeError, ValueError):
            return cls.from_string(str(version.get("string", "")))


async def get_cmake_version(cmake_path: str) -> VersionInfo | None:
    """Run ``cmake --version`` and parse the first line.

    Returns:
        VersionInfo if detected, None if cmake cannot be run
    """
    try:
        process = await asyncio.create_subprocess_exec(
            cmake_path,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await process.communicate()
    except OSError as e:
        logger.debug(f"Failed to run {cmake_path} --version: {e}")
        return None

    first_line = stdout.decode("utf-8", errors="replace").splitlines()[:1]
    result = VersionInfo.from_string(first_line[0]) if first_line else None
    if result:
        logger.debug(f"Detected cmake version: {result}")
    return result


@dataclass
class VersionCompatibility:
    """Result of version compatibility check."""

    compatible: bool
    version: VersionInfo | None
    warning: str | None = None


def check_file_api_support(version: VersionInfo | None) -> VersionCompatibility:
    """Check whether a CMake release can answer our File API queries.

    The File API needs 3.14. Before 3.24 compile groups carry no
    ``languageStandard``, so the standard falls back to flag detection.
    """
    # Can't check without a version
    if version is None:
        return VersionCompatibility(compatible=True, version=None)

    if version.as_tuple() < FILE_API_MINIMUM:
        return VersionCompatibility(
            compatible=False,
            version=version,
            warning=(
                f"CMake {version} does not support the File API; "
                f"version {'.'.join(map(str, FILE_API_MINIMUM))} or newer is required"
            ),
        )

    if version.as_tuple() < LANGUAGE_STANDARD_MINIMUM:
        return VersionCompatibility(
            compatible=True,
            version=version,
            warning=(
                f"CMake {version} does not report language standards; "
                "they are derived from compile flags instead"
            ),
        )

    return VersionCompatibility(compatible=True, version=version)
