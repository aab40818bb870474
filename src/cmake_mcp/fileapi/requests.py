"""File API query management.

CMake only honours the query directory as it is at configure time, so the
markers are synchronised before every configure run.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

logger = logging.getLogger(__name__)

CLIENT_ID: Final[str] = "client-cmake-mcp"

CODEMODEL_KIND: Final[str] = "codemodel-v2"
CACHE_KIND: Final[str] = "cache-v2"
CMAKE_FILES_KIND: Final[str] = "cmakeFiles-v1"

REQUIRED_KINDS: Final[tuple[str, ...]] = (CODEMODEL_KIND, CACHE_KIND, CMAKE_FILES_KIND)


def api_directory(build_directory: str | os.PathLike[str]) -> Path:
    return Path(build_directory) / ".cmake" / "api" / "v1"


def query_directory(
    build_directory: str | os.PathLike[str], client_id: str = CLIENT_ID
) -> Path:
    return api_directory(build_directory) / "query" / client_id


def reply_directory(build_directory: str | os.PathLike[str]) -> Path:
    return api_directory(build_directory) / "reply"


@dataclass
class RequestSync:
    """Changes made while synchronising the query directory."""

    query_directory: str
    created: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.removed)


class RequestManager:
    """Keeps ``query/<client-id>/`` equal to the set of required object kinds."""

    def __init__(
        self,
        build_directory: str,
        client_id: str = CLIENT_ID,
        kinds: tuple[str, ...] = REQUIRED_KINDS,
    ):
        self._build_directory = build_directory
        self._client_id = client_id
        self._kinds = kinds

    @property
    def query_directory(self) -> Path:
        return query_directory(self._build_directory, self._client_id)

    @property
    def kinds(self) -> tuple[str, ...]:
        return self._kinds

    def ensure(self) -> RequestSync:
        """Create missing markers and delete unknown ones.

        Existing correct markers are left untouched, so a second call with
        no external changes does nothing.

        Returns:
            The markers created and removed by this call
        """
        directory = self.query_directory
        sync = RequestSync(query_directory=str(directory))

        if directory.is_dir():
            for entry in sorted(directory.iterdir()):
                if entry.name in self._kinds:
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                sync.removed.append(entry.name)
        else:
            directory.mkdir(parents=True, exist_ok=True)

        for kind in self._kinds:
            marker = directory / kind
            if not marker.exists():
                marker.write_bytes(b"")
                sync.created.append(kind)

        if sync.changed:
            logger.info(
                f"File API query updated in {directory}: "
                f"created={sync.created}, removed={sync.removed}"
            )
        return sync
