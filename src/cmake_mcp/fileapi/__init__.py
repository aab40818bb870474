"""CMake File API client.

Provides:
- Query marker management (request directory kept in sync)
- Reply index discovery and reference resolution
- Immutable project model construction (projects, targets, compile groups, cache)
- Atomic publication of new models
"""

from .builder import ModelBuilder
from .errors import DocumentFormatError, FileApiError, UnresolvedReferenceError
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
from .requests import CLIENT_ID, REQUIRED_KINDS, RequestManager, RequestSync
from .store import ModelStore

__all__ = [
    "CLIENT_ID",
    "REQUIRED_KINDS",
    "CacheEntry",
    "CMakeInput",
    "CompileGroup",
    "DocumentFormatError",
    "FileApiError",
    "IncludePath",
    "ModelBuilder",
    "ModelStore",
    "Project",
    "ProjectSnapshot",
    "ReplyReferences",
    "ReplyResolver",
    "RequestManager",
    "RequestSync",
    "Target",
    "TargetType",
    "UnresolvedReferenceError",
]
