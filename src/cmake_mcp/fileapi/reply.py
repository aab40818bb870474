"""File API reply discovery.

Reply directory layout (written by CMake during configure):

    <build>/.cmake/api/v1/reply/index-<timestamp>.json
    <build>/.cmake/api/v1/reply/codemodel-v2-<hash>.json
    <build>/.cmake/api/v1/reply/target-<name>-<hash>.json
    ...

Index names sort lexicographically in creation order, so the greatest
name is the current one.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from .errors import DocumentFormatError, UnresolvedReferenceError
from .requests import CACHE_KIND, CLIENT_ID, CMAKE_FILES_KIND, CODEMODEL_KIND, reply_directory

logger = logging.getLogger(__name__)

INDEX_FILE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^index-.+\.json$")


@dataclass(frozen=True)
class ReplyReferences:
    """Reply documents selected by the current index for our client."""

    reply_directory: str
    index_file: str
    codemodel: str
    cache: str
    cmake_files: str | None = None
    cmake_version: dict[str, Any] = field(default_factory=dict)
    generator: str = ""
    multi_config: bool = False


class ReplyResolver:
    """Locates the newest index document and resolves its references."""

    def __init__(self, build_directory: str, client_id: str = CLIENT_ID):
        self._build_directory = build_directory
        self._client_id = client_id

    @property
    def reply_directory(self) -> Path:
        return reply_directory(self._build_directory)

    def find_index_file(self) -> str | None:
        """Name of the newest index document.

        Returns:
            File name, or None when the reply directory does not exist

        Raises:
            DocumentFormatError: If the directory exists but has no index
        """
        directory = self.reply_directory
        if not directory.is_dir():
            return None

        candidates = sorted(
            entry.name for entry in directory.iterdir() if INDEX_FILE_PATTERN.match(entry.name)
        )
        if not candidates:
            raise DocumentFormatError(
                f"No index file in reply directory {directory}", path=str(directory)
            )
        return candidates[-1]

    def resolve(self) -> ReplyReferences | None:
        """Resolve the references of the newest index for our client.

        Returns:
            References, or None when no reply directory exists yet

        Raises:
            DocumentFormatError: Missing index, malformed index or client reply
            UnresolvedReferenceError: The index file vanished while reading
        """
        index_file = self.find_index_file()
        if index_file is None:
            logger.debug(f"No reply directory at {self.reply_directory}")
            return None

        logger.info(f"Reading File API index {index_file}")
        index = self.read_document(index_file)

        reply = index.get("reply")
        if not isinstance(reply, dict):
            raise DocumentFormatError(f"Index {index_file} has no reply object", path=index_file)
        client_reply = reply.get(self._client_id)
        if not isinstance(client_reply, dict):
            raise DocumentFormatError(
                f"Index {index_file} has no reply for client {self._client_id}",
                path=index_file,
            )

        cmake_info = index.get("cmake") if isinstance(index.get("cmake"), dict) else {}
        version = cmake_info.get("version") if isinstance(cmake_info.get("version"), dict) else {}
        generator = (
            cmake_info.get("generator") if isinstance(cmake_info.get("generator"), dict) else {}
        )

        return ReplyReferences(
            reply_directory=str(self.reply_directory),
            index_file=index_file,
            codemodel=self._reference(client_reply, CODEMODEL_KIND, index_file),
            cache=self._reference(client_reply, CACHE_KIND, index_file),
            cmake_files=self._reference(
                client_reply, CMAKE_FILES_KIND, index_file, required=False
            ),
            cmake_version=dict(version),
            generator=str(generator.get("name", "")),
            multi_config=bool(generator.get("multiConfig", False)),
        )

    def read_document(self, name: str) -> dict[str, Any]:
        """Load one reply document by file name.

        Raises:
            UnresolvedReferenceError: If the file does not exist
            DocumentFormatError: If it is not a JSON object
        """
        if os.path.isabs(name) or os.path.basename(name) != name:
            raise DocumentFormatError(f"Invalid reply file reference: {name}", path=name)

        path = self.reply_directory / name
        try:
            with open(path, encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError as e:
            raise UnresolvedReferenceError(
                f"Referenced reply file does not exist: {name}", path=str(path)
            ) from e
        except OSError as e:
            raise DocumentFormatError(f"Cannot read reply file {name}: {e}", path=str(path)) from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DocumentFormatError(f"Malformed reply file {name}: {e}", path=str(path)) from e

        if not isinstance(document, dict):
            raise DocumentFormatError(f"Reply file {name} is not a JSON object", path=str(path))
        return document

    def _reference(
        self,
        client_reply: dict[str, Any],
        kind: str,
        index_file: str,
        required: bool = True,
    ) -> str | None:
        entry = client_reply.get(kind)
        if isinstance(entry, dict) and isinstance(entry.get("jsonFile"), str):
            return entry["jsonFile"]

        if isinstance(entry, dict) and "error" in entry:
            reason = f"CMake rejected {kind}: {entry['error']}"
        else:
            reason = f"No {kind} reference for client {self._client_id}"

        if required:
            raise DocumentFormatError(f"{reason} (index {index_file})", path=index_file)
        logger.debug(reason)
        return None
