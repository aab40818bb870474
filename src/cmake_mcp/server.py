"""MCP Server for CMake configure, build and project model queries."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from typing import Any

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .build import BuildManager, BuildSession, CMakeSettings, DiagnosticSeverity
from .fileapi import ProjectSnapshot
from .intellisense import SourceFileConfigurationProvider
from .utils.project import get_project_root
from .utils.version import check_file_api_support, get_cmake_version

logger = logging.getLogger(__name__)

MODEL_URI = "cmake://model"
CACHE_URI = "cmake://cache"
DIAGNOSTICS_URI = "cmake://diagnostics"

# Settings of the most recently used build tree (single client mode)
_settings: CMakeSettings | None = None
_providers: dict[str, SourceFileConfigurationProvider] = {}


def get_manager() -> BuildManager:
    return BuildManager()


def get_provider(session: BuildSession) -> SourceFileConfigurationProvider:
    """Get the configuration provider following a session's model."""
    key = os.path.normcase(session.build_directory)
    provider = _providers.get(key)
    if provider is None:
        provider = SourceFileConfigurationProvider()
        provider.attach(session.store)
        _providers[key] = provider
    return provider


async def resolve_settings(
    ctx: Context | None,
    source_directory: str | None = None,
    build_directory: str | None = None,
    generator: str | None = None,
    build_type: str | None = None,
    variables: dict[str, str] | None = None,
) -> CMakeSettings:
    """Merge tool arguments into the current settings.

    A new source directory without an explicit build directory gets the
    default ``<source>/build``; all other settings carry over.

    Raises:
        ValueError: If no source directory can be determined
    """
    global _settings
    settings = _settings

    if settings is None or source_directory:
        source = source_directory
        if not source:
            root = await get_project_root(ctx)
            if root is None:
                raise ValueError("Cannot determine CMake source directory; pass source_directory")
            source = str(root)
        if settings is None:
            settings = CMakeSettings(source_directory=source, build_directory=build_directory)
        else:
            # Switching projects keeps every other setting
            settings = replace(
                settings,
                source_directory=source,
                build_directory=build_directory,
                variables=dict(settings.variables),
                environment=dict(settings.environment),
            )
    elif build_directory:
        settings = replace(settings, build_directory=os.path.abspath(build_directory))

    changes: dict[str, Any] = {}
    if generator:
        changes["generator"] = generator
    if build_type:
        changes["build_type"] = build_type
    if variables:
        changes["variables"] = {**settings.variables, **variables}
    if changes:
        settings = replace(settings, **changes)

    _settings = settings
    return settings


def current_session() -> BuildSession | None:
    if _settings is None or _settings.build_directory is None:
        return None
    return get_manager().find_session(_settings.build_directory)


def create_server(settings: CMakeSettings | None = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        settings: Initial build tree settings. When omitted, the source
            directory is resolved from MCP client roots on first use.
    """
    global _settings
    _settings = settings
    mcp = FastMCP("cmake-mcp")
    manager = get_manager()

    async def notify_resources_changed(ctx: Context, *uris: str) -> None:
        """Notify client that cmake:// resources have changed."""
        try:
            if ctx.session:
                for uri in uris:
                    await ctx.session.send_resource_updated(AnyUrl(uri))
        except Exception as e:
            # Notification failure shouldn't break the tool
            logger.debug(f"Resource update notification failed: {e}")

    def no_session_error() -> dict:
        return {
            "success": False,
            "error": "No CMake build tree yet. Run cmake_configure first.",
        }

    # ============== Configure / Build Tools ==============

    @mcp.tool()
    async def cmake_configure(
        ctx: Context,
        source_directory: str | None = None,
        build_directory: str | None = None,
        generator: str | None = None,
        build_type: str | None = None,
        variables: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> dict:
        """
        Configure a CMake project and load its project model.

        Runs `cmake -G <generator> -DCMAKE_BUILD_TYPE=<type> <source>` in the build
        directory, then reads the CMake File API reply to rebuild the target model
        (targets, compile groups, cache). Diagnostics from CMakeLists.txt errors and
        warnings are returned with file and line.

        Settings persist between calls: omit arguments to reuse the previous ones.
        A new source_directory keeps generator, build_type and variables but moves
        the build directory to <source>/build unless build_directory is given.

        Args:
            source_directory: Directory containing the top-level CMakeLists.txt
            build_directory: Build tree (default: <source>/build)
            generator: CMake generator (default: Ninja)
            build_type: Debug, Release, RelWithDebInfo, MinSizeRel (default: Debug)
            variables: Extra cache variables passed as -DNAME=value
            timeout: Kill cmake after this many seconds
        """
        try:
            settings = await resolve_settings(
                ctx, source_directory, build_directory, generator, build_type, variables
            )
            session = manager.get_session(settings)
            get_provider(session)

            version = await get_cmake_version(settings.cmake_path or "cmake")
            compatibility = check_file_api_support(version)
            if not compatibility.compatible:
                return {"success": False, "error": compatibility.warning}

            result = await session.configure(timeout=timeout)
            await notify_resources_changed(ctx, MODEL_URI, CACHE_URI, DIAGNOSTICS_URI)

            data = result.to_dict()
            data["summary"] = result.to_summary()
            if compatibility.warning:
                data["warning"] = compatibility.warning
            if session.model is not None:
                data["targets"] = [t.name for t in session.model.targets]
            return {"success": result.success, "data": data}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def cmake_build(
        ctx: Context,
        target: str | None = None,
        build_type: str | None = None,
        timeout: float | None = None,
    ) -> dict:
        """
        Build the configured CMake project, or one target of it.

        Runs `cmake --build <build_dir> [--target <target>]`. Compiler errors and
        warnings (GCC, Clang, MSVC, Green Hills) are extracted from the output with
        absolute file paths, line and column.

        Args:
            target: Target name from list_targets (default: all)
            build_type: Configuration for multi-config generators
            timeout: Kill the build after this many seconds
        """
        try:
            if _settings is None:
                return no_session_error()
            settings = await resolve_settings(ctx, build_type=build_type)
            result = await manager.build(settings, target=target, timeout=timeout)
            await notify_resources_changed(ctx, DIAGNOSTICS_URI)

            data = result.to_dict()
            data["summary"] = result.to_summary()
            return {"success": result.success, "data": data}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def cmake_cancel() -> dict:
        """Cancel the running configure or build."""
        try:
            cancelled = await manager.cancel_all()
            return {"success": True, "data": {"cancelled": cancelled}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_build_state() -> dict:
        """Get the state of every build tree and its last result."""
        data = manager.to_dict()
        data["current"] = _settings.build_directory if _settings else None
        return {"success": True, "data": data}

    @mcp.tool()
    async def get_diagnostics(
        file: str | None = None,
        severity: str | None = None,
    ) -> dict:
        """
        Get diagnostics of the last configure or build.

        Args:
            file: Only diagnostics for this file
            severity: Only "error", "warning" or "info"
        """
        session = current_session()
        if session is None:
            return no_session_error()
        try:
            collection = session.diagnostics
            diagnostics = collection.get(file) if file else collection.all()
            if severity:
                wanted = DiagnosticSeverity(severity.lower())
                diagnostics = [d for d in diagnostics if d.severity == wanted]
            return {
                "success": True,
                "data": {
                    "count": len(diagnostics),
                    "diagnostics": [d.to_dict() for d in diagnostics],
                },
            }
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Project Model Tools ==============

    def current_model() -> ProjectSnapshot | None:
        session = current_session()
        return session.model if session is not None else None

    @mcp.tool()
    async def get_project_model() -> dict:
        """
        Get the project model from the last successful configure.

        Contains projects, targets with their type and source directory, and
        compile groups (language, compiler, flags, sources, defines, includes).
        Also lists the generator and every file CMake read while configuring
        (inputs), which tells when a reconfigure is needed.
        """
        model = current_model()
        if model is None:
            return no_session_error()
        return {"success": True, "data": model.to_dict()}

    @mcp.tool()
    async def list_targets(project: str | None = None) -> dict:
        """
        List build targets with type and source count.

        Args:
            project: Only targets of this CMake project
        """
        model = current_model()
        if model is None:
            return no_session_error()

        targets = model.targets
        if project:
            matching = [p for p in model.projects if p.name == project]
            if not matching:
                return {"success": False, "error": f"Unknown project: {project}"}
            targets = matching[0].targets

        return {
            "success": True,
            "data": [
                {
                    "name": t.name,
                    "type": t.type.value,
                    "sourceDirectory": t.source_directory,
                    "sources": len(t.sources),
                }
                for t in targets
            ],
        }

    @mcp.tool()
    async def get_cache(name: str | None = None, include_advanced: bool = False) -> dict:
        """
        Read the CMake cache.

        Args:
            name: A single cache variable (e.g. CMAKE_CXX_COMPILER)
            include_advanced: Include variables marked advanced
        """
        model = current_model()
        if model is None:
            return no_session_error()

        if name:
            entry = model.cache.get(name)
            if entry is None:
                return {"success": False, "error": f"Cache variable not set: {name}"}
            return {"success": True, "data": entry.to_dict()}

        entries = [
            entry.to_dict()
            for entry in model.cache.values()
            if include_advanced or not entry.advanced
        ]
        return {"success": True, "data": entries}

    @mcp.tool()
    async def get_file_configuration(files: list[str]) -> dict:
        """
        Get how source files are compiled: include paths, defines, language
        standard and compiler. Use this before editing C/C++ code to know which
        headers and macros are visible.

        Args:
            files: Absolute source file paths
        """
        session = current_session()
        if session is None:
            return no_session_error()

        provider = get_provider(session)
        configurations = provider.provide(files)
        browse = provider.browse_configuration()
        return {
            "success": True,
            "data": {
                "files": {path: config.to_dict() for path, config in configurations.items()},
                "unknown": [path for path in files if path not in configurations],
                "browse": browse.to_dict() if browse else None,
            },
        }

    @mcp.tool()
    async def refresh_model(ctx: Context) -> dict:
        """
        Reload the project model from the existing File API reply without
        running cmake (e.g. after a configure outside this server).
        """
        session = current_session()
        if session is None:
            if _settings is None:
                return no_session_error()
            session = manager.get_session(_settings)
            get_provider(session)
        try:
            snapshot = await session.refresh_model()
            if snapshot is None:
                return {"success": False, "error": "No File API reply. Run cmake_configure first."}
            await notify_resources_changed(ctx, MODEL_URI, CACHE_URI)
            return {
                "success": True,
                "data": {
                    "indexFile": snapshot.index_file,
                    "targets": [t.name for t in snapshot.targets],
                },
            }
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Prompts ==============

    @mcp.prompt(
        name="cmake_workflow",
        description="Configure, build and fix workflow for CMake projects",
    )
    def cmake_workflow_prompt() -> list[dict]:
        """Start here when building CMake projects."""
        return [
            {
                "role": "user",
                "content": """# CMake Build Guide

## Workflow

### 1. Configure
```
cmake_configure(source_directory="path/to/project")   # build dir defaults to <source>/build
cmake_configure(build_type="Release", variables={"BUILD_TESTING": "OFF"})
```
Configure errors point at CMakeLists.txt lines. Fix them and configure again.

### 2. Explore the Project
```
list_targets()                    # targets and their types
get_project_model()               # compile groups, sources, defines, includes
get_cache(name="CMAKE_CXX_COMPILER")
get_file_configuration(files=["/abs/path/src/main.cpp"])
```

### 3. Build
```
cmake_build()                     # everything
cmake_build(target="app")         # one target
```

### 4. Fix Errors
```
get_diagnostics(severity="error") # file, line, column, message
```
Edit the reported files, then build again. Reconfigure only after changing
CMakeLists.txt or *.cmake files.

## Tips
- Notes following a compiler error are attached to it as related information
- cmake_cancel() stops a long build
- refresh_model() reloads the model after configuring outside this server
""",
            }
        ]

    # ============== Resources ==============

    @mcp.resource(MODEL_URI, mime_type="application/json")
    async def model_resource() -> str:
        """Project model (JSON).

        Contains: projects, targets, compile groups.
        Updates when: configure completes or the model is refreshed.
        """
        model = current_model()
        return json.dumps(model.to_dict() if model else None, indent=2)

    @mcp.resource(CACHE_URI, mime_type="application/json")
    async def cache_resource() -> str:
        """CMake cache entries (JSON).

        Updates when: configure completes or the model is refreshed.
        """
        model = current_model()
        entries = [entry.to_dict() for entry in model.cache.values()] if model else []
        return json.dumps(entries, indent=2)

    @mcp.resource(DIAGNOSTICS_URI, mime_type="application/json")
    async def diagnostics_resource() -> str:
        """Diagnostics of the last configure or build, grouped by file (JSON)."""
        session = current_session()
        return json.dumps(session.diagnostics.to_dict() if session else {}, indent=2)

    logger.info("CMake MCP Server initialized")
    return mcp
