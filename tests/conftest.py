"""Pytest fixtures for cmake-mcp tests."""

import asyncio
import json
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from cmake_mcp.fileapi.requests import CLIENT_ID, reply_directory  # noqa: E402


class ReplyWriter:
    """Writes File API reply documents the way CMake lays them out."""

    def __init__(self, build_dir: Path, source_dir: Path):
        self.build_dir = build_dir
        self.source_dir = source_dir
        self.directory = reply_directory(build_dir)

    def write(self, name: str, document) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        (self.directory / name).write_text(json.dumps(document), encoding="utf-8")
        return name

    def index(
        self,
        name: str = "index-2024-01-01T00-00-00-0000.json",
        codemodel: str | None = "codemodel-v2-1.json",
        cache: str | None = "cache-v2-1.json",
        cmake_files: str | None = "cmakeFiles-v1-1.json",
        client: str = CLIENT_ID,
        generator: str = "Ninja",
    ) -> str:
        client_reply = {}
        if codemodel:
            client_reply["codemodel-v2"] = {"kind": "codemodel", "jsonFile": codemodel}
        if cache:
            client_reply["cache-v2"] = {"kind": "cache", "jsonFile": cache}
        if cmake_files:
            client_reply["cmakeFiles-v1"] = {"kind": "cmakeFiles", "jsonFile": cmake_files}
        return self.write(
            name,
            {
                "cmake": {
                    "version": {
                        "major": 3,
                        "minor": 28,
                        "patch": 1,
                        "suffix": "",
                        "string": "3.28.1",
                        "isDirty": False,
                    },
                    "generator": {"name": generator, "multiConfig": False},
                },
                "objects": [],
                "reply": {client: client_reply},
            },
        )

    def cache(self, name: str = "cache-v2-1.json", entries: dict | None = None) -> str:
        if entries is None:
            entries = {
                "CMAKE_BUILD_TYPE": ("Debug", "STRING"),
                "CMAKE_CXX_COMPILER": ("/usr/bin/g++", "FILEPATH"),
                "CMAKE_C_COMPILER": ("/usr/bin/gcc", "FILEPATH"),
            }
        return self.write(
            name,
            {
                "kind": "cache",
                "version": {"major": 2, "minor": 0},
                "entries": [
                    {
                        "name": key,
                        "value": value,
                        "type": kind,
                        "properties": [{"name": "HELPSTRING", "value": f"Help for {key}"}],
                    }
                    for key, (value, kind) in entries.items()
                ],
            },
        )

    def target(
        self,
        name: str,
        directory: str = ".",
        sources: tuple[str, ...] = ("main.cpp",),
        target_type: str = "EXECUTABLE",
        language: str = "CXX",
        json_file: str | None = None,
    ) -> dict:
        """Write a target document; returns its codemodel entry."""
        json_file = json_file or f"target-{name}-Debug-1.json"
        paths = [f"{directory}/{source}" if directory != "." else source for source in sources]
        self.write(
            json_file,
            {
                "name": name,
                "id": f"{name}::@1",
                "type": target_type,
                "paths": {"source": directory, "build": directory},
                "sources": [{"path": path, "compileGroupIndex": 0} for path in paths],
                "compileGroups": [
                    {
                        "language": language,
                        "sourceIndexes": list(range(len(paths))),
                        "compileCommandFragments": [{"fragment": "-g"}, {"fragment": "-std=gnu++17"}],
                        "defines": [{"define": "DEBUG"}, {"define": f"{name.upper()}_EXPORTS"}],
                        "includes": [
                            {"path": f"{directory}/include"},
                            {"path": "/opt/sdk/include", "isSystem": True},
                        ],
                        "languageStandard": {"backtraces": [], "standard": "17"},
                    }
                ],
            },
        )
        return {"name": name, "id": f"{name}::@1", "jsonFile": json_file, "directoryIndex": 0}

    def codemodel(
        self,
        projects: list[tuple[str, list[int]]],
        targets: list[dict],
        name: str = "codemodel-v2-1.json",
        configuration: str = "Debug",
    ) -> str:
        return self.write(
            name,
            {
                "kind": "codemodel",
                "version": {"major": 2, "minor": 6},
                "paths": {"source": str(self.source_dir), "build": str(self.build_dir)},
                "configurations": [
                    {
                        "name": configuration,
                        "projects": [
                            {"name": project, "targetIndexes": indexes, "directoryIndexes": [0]}
                            for project, indexes in projects
                        ],
                        "targets": targets,
                        "directories": [{"source": ".", "build": "."}],
                    }
                ],
            },
        )

    def cmake_files(self, name: str = "cmakeFiles-v1-1.json") -> str:
        return self.write(
            name,
            {
                "kind": "cmakeFiles",
                "version": {"major": 1, "minor": 0},
                "paths": {"source": str(self.source_dir), "build": str(self.build_dir)},
                "inputs": [
                    {"path": "CMakeLists.txt"},
                    {"path": "lib/CMakeLists.txt"},
                    {"path": "/usr/share/cmake/Modules/CMakeCXXInformation.cmake", "isCMake": True, "isExternal": True},
                ],
            },
        )

    def two_projects(self) -> None:
        """Two projects with one target each, two sources per target."""
        self.cache()
        targets = [
            self.target("app", "app", ("main.cpp", "util.cpp")),
            self.target("core", "lib", ("core.cpp", "io.cpp"), target_type="STATIC_LIBRARY"),
        ]
        self.codemodel([("App", [0]), ("Core", [1])], targets)
        self.cmake_files()
        self.index()


@pytest.fixture
def source_dir(tmp_path):
    """Source tree with a top-level CMakeLists.txt."""
    source = tmp_path / "project"
    source.mkdir()
    (source / "CMakeLists.txt").write_text("cmake_minimum_required(VERSION 3.14)\nproject(App)\n")
    return source


@pytest.fixture
def build_dir(source_dir):
    build = source_dir / "build"
    build.mkdir()
    return build


@pytest.fixture
def reply_writer(build_dir, source_dir):
    """Writer for File API reply documents in build_dir."""
    return ReplyWriter(build_dir, source_dir)


def make_stream(data: bytes) -> asyncio.StreamReader:
    """StreamReader pre-filled with data and EOF."""
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


def make_process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0):
    """Mock asyncio subprocess with real stream readers."""
    process = MagicMock()
    process.pid = 4242
    process.returncode = None
    process.stdout = make_stream(stdout)
    process.stderr = make_stream(stderr)

    async def wait():
        process.returncode = returncode
        return returncode

    process.wait = AsyncMock(side_effect=wait)
    return process


def make_hanging_process():
    """Mock subprocess that runs until kill() is called, then exits by SIGKILL."""
    process = MagicMock()
    process.pid = 4243
    process.returncode = None
    process.stdout = asyncio.StreamReader()
    process.stderr = asyncio.StreamReader()
    killed = asyncio.Event()

    def kill():
        process.returncode = -9
        process.stdout.feed_eof()
        process.stderr.feed_eof()
        killed.set()

    async def wait():
        await killed.wait()
        return -9

    process.kill = MagicMock(side_effect=kill)
    process.wait = AsyncMock(side_effect=wait)
    return process
