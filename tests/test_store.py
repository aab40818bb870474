"""Tests for model publication - atomic swap and failure isolation."""

import os
from unittest.mock import MagicMock

import pytest

from cmake_mcp.fileapi.builder import ModelBuilder
from cmake_mcp.fileapi.errors import DocumentFormatError, UnresolvedReferenceError
from cmake_mcp.fileapi.reply import ReplyResolver
from cmake_mcp.fileapi.store import ModelStore


def _refresh(store: ModelStore, build_dir):
    resolver = ReplyResolver(str(build_dir))
    return store.refresh(resolver, ModelBuilder(resolver))


def _five_targets(writer, index_name: str, suffix: str = "1") -> list[dict]:
    writer.cache(name=f"cache-{suffix}.json")
    targets = [
        writer.target(f"t{i}", json_file=f"target-t{i}-{suffix}.json") for i in range(5)
    ]
    writer.codemodel([("App", list(range(5)))], targets, name=f"codemodel-{suffix}.json")
    writer.index(
        name=index_name,
        codemodel=f"codemodel-{suffix}.json",
        cache=f"cache-{suffix}.json",
        cmake_files=None,
    )
    return targets


class TestModelStore:
    """Tests for ModelStore.refresh()."""

    def test_no_reply_keeps_nothing(self, build_dir):
        """Test a missing reply is not an error and publishes nothing."""
        store = ModelStore()
        listener = MagicMock()
        store.on_model_change(listener)

        assert _refresh(store, build_dir) is None
        assert store.snapshot is None
        listener.assert_not_called()

    def test_publishes_and_notifies_once(self, reply_writer, build_dir):
        store = ModelStore()
        listener = MagicMock()
        store.on_model_change(listener)
        reply_writer.two_projects()

        snapshot = _refresh(store, build_dir)

        assert store.snapshot is snapshot
        listener.assert_called_once_with(snapshot)

    def test_failed_refresh_keeps_previous_model(self, reply_writer, build_dir):
        """Test a dangling reference in a new reply leaves the old model current."""
        store = ModelStore()
        _five_targets(reply_writer, "index-2024-01-01T00-00-00-0000.json", suffix="1")
        previous = _refresh(store, build_dir)
        listener = MagicMock()
        store.on_model_change(listener)

        # Newer reply whose third target document is missing
        _five_targets(reply_writer, "index-2024-01-02T00-00-00-0000.json", suffix="2")
        os.remove(reply_writer.directory / "target-t2-2.json")

        with pytest.raises(UnresolvedReferenceError):
            _refresh(store, build_dir)

        assert store.snapshot is previous
        assert len(store.snapshot.targets) == 5
        assert isinstance(store.last_error, UnresolvedReferenceError)
        listener.assert_not_called()

    def test_malformed_reply_keeps_previous_model(self, reply_writer, build_dir):
        store = ModelStore()
        reply_writer.two_projects()
        previous = _refresh(store, build_dir)

        reply_writer.write("index-2099-01-01T00-00-00-0000.json", {"reply": {}})

        with pytest.raises(DocumentFormatError):
            _refresh(store, build_dir)
        assert store.snapshot is previous

    def test_cache_replaced_not_merged(self, reply_writer, build_dir):
        """Test a key dropped by a reconfigure disappears from the cache."""
        store = ModelStore()
        reply_writer.two_projects()
        first = _refresh(store, build_dir)
        assert "CMAKE_C_COMPILER" in first.cache

        reply_writer.cache(
            entries={
                "CMAKE_BUILD_TYPE": ("Release", "STRING"),
                "CMAKE_CXX_COMPILER": ("/usr/bin/clang++", "FILEPATH"),
            }
        )
        second = _refresh(store, build_dir)

        assert "CMAKE_C_COMPILER" not in second.cache
        assert second.cache["CMAKE_BUILD_TYPE"].value == "Release"
        # The earlier snapshot is untouched
        assert first.cache["CMAKE_BUILD_TYPE"].value == "Debug"
        assert "CMAKE_C_COMPILER" in first.cache

    def test_success_clears_last_error(self, reply_writer, build_dir):
        store = ModelStore()
        reply_writer.write("index-0.json", {"reply": {}})
        with pytest.raises(DocumentFormatError):
            _refresh(store, build_dir)
        assert store.last_error is not None

        reply_writer.two_projects()
        _refresh(store, build_dir)

        assert store.last_error is None

    def test_listener_error_does_not_break_publication(self, reply_writer, build_dir):
        store = ModelStore()
        store.on_model_change(MagicMock(side_effect=RuntimeError("listener failed")))
        second = MagicMock()
        store.on_model_change(second)
        reply_writer.two_projects()

        snapshot = _refresh(store, build_dir)

        assert store.snapshot is snapshot
        second.assert_called_once_with(snapshot)
