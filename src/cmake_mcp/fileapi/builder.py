"""Construction of the project model from resolved reply documents.

The whole snapshot is built before anything is returned; a failure in any
document aborts the build and nothing partial escapes.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from types import MappingProxyType
from typing import Any, TypeVar

from ..utils.version import VersionInfo
from .errors import DocumentFormatError
from .model import (
    CacheEntry,
    CMakeInput,
    CompileGroup,
    IncludePath,
    Project,
    ProjectSnapshot,
    Target,
    TargetType,
)
from .reply import ReplyReferences, ReplyResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse(name: str, parser: Callable[[], T]) -> T:
    """Run a parser, turning schema surprises into DocumentFormatError."""
    try:
        return parser()
    except DocumentFormatError:
        raise
    except (KeyError, TypeError, IndexError, ValueError, AttributeError) as e:
        raise DocumentFormatError(
            f"Unexpected structure in {name}: {type(e).__name__}: {e}", path=name
        ) from e


def _absolute(root: str, path: str) -> str:
    return os.path.normpath(os.path.join(root, path))


class ModelBuilder:
    """Turns codemodel, target, cache and cmakeFiles replies into a snapshot."""

    def __init__(self, resolver: ReplyResolver, build_type: str | None = None):
        self._resolver = resolver
        self._build_type = build_type

    def build(self, references: ReplyReferences) -> ProjectSnapshot:
        """Read every referenced document and build a new snapshot.

        Args:
            references: Resolved references from the newest index

        Returns:
            A fully constructed snapshot

        Raises:
            DocumentFormatError: A document does not follow the schema
            UnresolvedReferenceError: A referenced document is missing
        """
        cache = self.parse_cache(references.cache)

        codemodel_name = references.codemodel
        codemodel = self._resolver.read_document(codemodel_name)
        source_root, build_root = _parse(
            codemodel_name,
            lambda: (codemodel["paths"]["source"], codemodel["paths"]["build"]),
        )
        configuration = _parse(
            codemodel_name, lambda: self._select_configuration(codemodel["configurations"])
        )

        targets = _parse(
            codemodel_name,
            lambda: [
                self._build_target(entry, source_root, cache)
                for entry in configuration["targets"]
            ],
        )
        projects = _parse(
            codemodel_name,
            lambda: [
                Project(
                    name=entry["name"],
                    targets=tuple(targets[index] for index in entry.get("targetIndexes", [])),
                )
                for entry in configuration["projects"]
            ],
        )

        inputs: tuple[CMakeInput, ...] = ()
        if references.cmake_files:
            inputs = self.parse_cmake_files(references.cmake_files, source_root)

        version = VersionInfo.from_fileapi(references.cmake_version)
        snapshot = ProjectSnapshot(
            projects=tuple(projects),
            targets=tuple(targets),
            cache=cache,
            inputs=inputs,
            configuration=str(configuration.get("name", "")),
            source_directory=os.path.normpath(source_root),
            build_directory=os.path.normpath(build_root),
            index_file=references.index_file,
            cmake_version=str(version) if version is not None else "",
            generator=references.generator,
            multi_config=references.multi_config,
        )
        logger.info(
            f"Built model from {references.index_file}: {len(projects)} projects, "
            f"{len(targets)} targets, {len(cache)} cache entries"
        )
        return snapshot

    def parse_cache(self, name: str) -> MappingProxyType[str, CacheEntry]:
        """Parse a cache document into a fresh read-only mapping."""
        document = self._resolver.read_document(name)

        def parse() -> MappingProxyType[str, CacheEntry]:
            entries: dict[str, CacheEntry] = {}
            for entry in document["entries"]:
                properties = {
                    prop["name"]: prop.get("value", "") for prop in entry.get("properties", [])
                }
                entries[entry["name"]] = CacheEntry(
                    name=entry["name"],
                    value=str(entry["value"]),
                    type=str(entry.get("type", "")),
                    help_string=str(properties.get("HELPSTRING", "")),
                    advanced=str(properties.get("ADVANCED", "0")).upper() in ("1", "ON", "TRUE"),
                )
            return MappingProxyType(entries)

        return _parse(name, parse)

    def parse_cmake_files(self, name: str, source_root: str) -> tuple[CMakeInput, ...]:
        document = self._resolver.read_document(name)
        return _parse(
            name,
            lambda: tuple(
                CMakeInput(
                    path=_absolute(source_root, entry["path"]),
                    is_generated=bool(entry.get("isGenerated", False)),
                    is_external=bool(entry.get("isExternal", False)),
                    is_cmake=bool(entry.get("isCMake", False)),
                )
                for entry in document["inputs"]
            ),
        )

    def _select_configuration(self, configurations: list[dict[str, Any]]) -> dict[str, Any]:
        """Multi-config generators report one configuration per build type."""
        if not configurations:
            raise DocumentFormatError("Codemodel has no configurations")
        if self._build_type:
            for configuration in configurations:
                if configuration.get("name") == self._build_type:
                    return configuration
        return configurations[0]

    def _build_target(
        self,
        entry: dict[str, Any],
        source_root: str,
        cache: MappingProxyType[str, CacheEntry],
    ) -> Target:
        name = entry["jsonFile"]
        document = self._resolver.read_document(name)

        def parse() -> Target:
            sources = document.get("sources", [])
            groups = [
                self._build_compile_group(group, sources, source_root, cache)
                for group in document.get("compileGroups", [])
            ]
            return Target(
                name=entry["name"],
                id=str(document.get("id", entry.get("id", ""))),
                type=TargetType(document["type"]),
                source_directory=_absolute(source_root, document["paths"]["source"]),
                compile_groups=tuple(groups),
            )

        return _parse(name, parse)

    def _build_compile_group(
        self,
        group: dict[str, Any],
        sources: list[dict[str, Any]],
        source_root: str,
        cache: MappingProxyType[str, CacheEntry],
    ) -> CompileGroup:
        language = group["language"]
        compiler = cache.get(f"CMAKE_{language}_COMPILER")
        standard = group.get("languageStandard")
        return CompileGroup(
            language=language,
            compiler_path=compiler.value if compiler is not None else "",
            compile_flags=" ".join(
                fragment["fragment"] for fragment in group.get("compileCommandFragments", [])
            ),
            sources=tuple(
                _absolute(source_root, sources[index]["path"])
                for index in group["sourceIndexes"]
            ),
            defines=tuple(define["define"] for define in group.get("defines", [])),
            include_paths=tuple(
                IncludePath(
                    path=_absolute(source_root, include["path"]),
                    is_system=bool(include.get("isSystem", False)),
                )
                for include in group.get("includes", [])
            ),
            language_standard=standard.get("standard") if isinstance(standard, dict) else None,
        )
