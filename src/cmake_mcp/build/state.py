"""Build state management, diagnostics and result types.

State machine for build sessions:
IDLE → CONFIGURING | BUILDING → READY | FAILED | CANCELLED
     ↑___________________________________________|
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class BuildState(str, Enum):
    """Build session state machine states."""

    IDLE = "idle"
    CONFIGURING = "configuring"
    BUILDING = "building"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DiagnosticSeverity(str, Enum):
    """Diagnostic severity levels."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @classmethod
    def from_label(cls, label: str) -> DiagnosticSeverity:
        """Map a tool's severity word (``fatal error``, ``note``...) to a level."""
        label = label.lower().strip()
        if label.endswith("error"):
            return cls.ERROR
        if "warning" in label:
            return cls.WARNING
        return cls.INFO


@dataclass(frozen=True)
class RelatedInformation:
    """A secondary location attached to a diagnostic (e.g. a gcc note)."""

    file: str
    line: int
    message: str
    column: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "file": self.file,
            "line": self.line,
            "message": self.message,
        }
        if self.column is not None:
            result["column"] = self.column
        return result


@dataclass(frozen=True)
class Diagnostic:
    """Parsed compiler or CMake diagnostic."""

    file: str
    line: int
    severity: DiagnosticSeverity
    message: str
    source: str
    column: int | None = None
    code: str | None = None
    related: tuple[RelatedInformation, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "file": self.file,
            "line": self.line,
            "severity": self.severity.value,
            "message": self.message,
            "source": self.source,
        }
        if self.column is not None:
            result["column"] = self.column
        if self.code:
            result["code"] = self.code
        if self.related:
            result["related"] = [r.to_dict() for r in self.related]
        return result


class DiagnosticCollection:
    """Diagnostics of one invocation grouped by absolute file path.

    Groups keep first-seen order and diagnostics keep line order within a
    stream. Nothing is deduplicated.
    """

    def __init__(self, base_directory: str | None = None):
        self._base_directory = base_directory
        self._by_file: dict[str, list[Diagnostic]] = {}

    def resolve_path(self, file: str) -> str:
        """Absolute, normalized key for a diagnostic's file."""
        if not os.path.isabs(file) and self._base_directory:
            file = os.path.join(self._base_directory, file)
        return os.path.normpath(os.path.abspath(file))

    def add(self, diagnostic: Diagnostic) -> Diagnostic:
        """Store a diagnostic under its absolute path; returns the stored copy."""
        key = self.resolve_path(diagnostic.file)
        related = tuple(replace(r, file=self.resolve_path(r.file)) for r in diagnostic.related)
        diagnostic = replace(diagnostic, file=key, related=related)
        self._by_file.setdefault(key, []).append(diagnostic)
        return diagnostic

    def get(self, file: str) -> list[Diagnostic]:
        return list(self._by_file.get(self.resolve_path(file), []))

    def files(self) -> list[str]:
        return list(self._by_file)

    def items(self) -> list[tuple[str, list[Diagnostic]]]:
        return [(path, list(diags)) for path, diags in self._by_file.items()]

    def all(self) -> list[Diagnostic]:
        return [d for diags in self._by_file.values() for d in diags]

    def count(self, severity: DiagnosticSeverity | None = None) -> int:
        if severity is None:
            return sum(len(diags) for diags in self._by_file.values())
        return sum(1 for d in self.all() if d.severity == severity)

    def __len__(self) -> int:
        return self.count()

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            path: [d.to_dict() for d in diags] for path, diags in self._by_file.items()
        }


class BuildError(Exception):
    """Build operation error with diagnostics."""

    def __init__(
        self,
        message: str,
        diagnostics: list[Diagnostic] | None = None,
        exit_code: int | None = None,
    ):
        super().__init__(message)
        self.diagnostics = diagnostics or []
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        return result


class SpawnError(BuildError):
    """The build tool could not be started at all."""

    def __init__(self, executable: str, reason: str):
        super().__init__(f"Failed to start {executable}: {reason}")
        self.executable = executable
        self.reason = reason


@dataclass
class ProcessResult:
    """Exit disposition and diagnostics of one tool invocation."""

    exit_code: int | None
    signal: int | None = None
    diagnostics: DiagnosticCollection = field(default_factory=DiagnosticCollection)
    output: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and self.signal is None

    @property
    def abnormal(self) -> bool:
        """Killed by a signal instead of exiting."""
        return self.signal is not None


@dataclass
class BuildResult:
    """Result of a configure or build operation."""

    success: bool
    state: BuildState
    command: str
    build_directory: str
    configuration: str
    exit_code: int | None = None
    signal: int | None = None
    diagnostics: DiagnosticCollection = field(default_factory=DiagnosticCollection)
    output: list[str] = field(default_factory=list)
    duration_ms: float = 0.0
    cancelled: bool = False
    timed_out: bool = False
    model_refreshed: bool = False
    model_error: str | None = None

    @property
    def errors(self) -> list[Diagnostic]:
        """Get only error diagnostics."""
        return [d for d in self.diagnostics.all() if d.severity == DiagnosticSeverity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        """Get only warning diagnostics."""
        return [
            d for d in self.diagnostics.all() if d.severity == DiagnosticSeverity.WARNING
        ]

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "success": self.success,
            "state": self.state.value,
            "command": self.command,
            "buildDirectory": self.build_directory,
            "configuration": self.configuration,
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
            "durationMs": round(self.duration_ms, 2),
            "modelRefreshed": self.model_refreshed,
        }
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        if self.signal is not None:
            result["signal"] = self.signal
        if len(self.diagnostics):
            result["diagnostics"] = self.diagnostics.to_dict()
        if self.cancelled:
            result["cancelled"] = True
        if self.timed_out:
            result["timedOut"] = True
        if self.model_error:
            result["modelError"] = self.model_error
        return result

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        status = f"[OK] {self.command} succeeded" if self.success else f"[FAILED] {self.command} failed"
        if self.cancelled:
            status = f"[CANCELLED] {self.command} cancelled"

        parts = [
            status,
            f"  Build directory: {self.build_directory}",
            f"  Configuration: {self.configuration}",
            f"  Duration: {self.duration_ms:.0f}ms",
        ]

        if self.error_count > 0:
            parts.append(f"  Errors: {self.error_count}")
        if self.warning_count > 0:
            parts.append(f"  Warnings: {self.warning_count}")
        if self.model_error:
            parts.append(f"  Model refresh failed: {self.model_error}")

        # Show first few errors
        for err in self.errors[:5]:
            location = f"{err.file}:{err.line}"
            if err.column is not None:
                location += f":{err.column}"
            parts.append(f"    {location}: {err.message}")

        if self.error_count > 5:
            parts.append(f"    ... and {self.error_count - 5} more errors")

        return "\n".join(parts)
