"""Build orchestration module for CMake projects.

Provides configure/build functionality with:
- Per-build-directory async lock with state machine
- Concurrent stdout/stderr pumping with live problem matching
- Diagnostics for CMake, MSVC, GCC/Clang and Green Hills output
- Security: argument validation, path validation, no shell
"""

from .lines import LineSplitter
from .manager import BuildManager
from .matchers import DEFAULT_GRAMMARS, ProblemMatcher, parse_output
from .policy import BuildCommand, BuildPolicy, CMakeSettings
from .runner import ProcessRunner
from .session import BuildSession
from .state import (
    BuildError,
    BuildResult,
    BuildState,
    Diagnostic,
    DiagnosticCollection,
    DiagnosticSeverity,
    ProcessResult,
    SpawnError,
)

__all__ = [
    "BuildPolicy",
    "BuildCommand",
    "BuildState",
    "BuildResult",
    "BuildError",
    "BuildSession",
    "BuildManager",
    "CMakeSettings",
    "DEFAULT_GRAMMARS",
    "Diagnostic",
    "DiagnosticCollection",
    "DiagnosticSeverity",
    "LineSplitter",
    "ProblemMatcher",
    "ProcessResult",
    "ProcessRunner",
    "SpawnError",
    "parse_output",
]
