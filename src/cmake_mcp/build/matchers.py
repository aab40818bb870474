"""Problem matchers: structured diagnostics from build tool console output.

Each supported toolchain has one ``Grammar``. A grammar owns a set of
primary patterns (a line that opens a diagnostic) and, for multi-line
formats, secondary patterns for the lines that may immediately follow and
refine the same diagnostic.

Matcher state machine:
IDLE → AWAITING_SECONDARY (primary of a multi-line grammar matched)
     ↑________________________| (line matches no secondary pattern)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from .state import Diagnostic, DiagnosticCollection, DiagnosticSeverity, RelatedInformation

logger = logging.getLogger(__name__)


class GrammarKind(str, Enum):
    """Supported diagnostic formats."""

    CMAKE = "cmake"
    MSVC = "msvc"
    GCC = "gcc"
    GHS = "ghs"


class MatcherState(str, Enum):
    """Problem matcher states."""

    IDLE = "idle"
    AWAITING_SECONDARY = "awaiting-secondary"


class SecondaryAction(str, Enum):
    """What a secondary line contributes to the pending diagnostic."""

    APPEND_MESSAGE = "append-message"
    RELATE = "relate"
    CONSUME = "consume"


@dataclass(frozen=True)
class SecondaryPattern:
    pattern: re.Pattern[str]
    action: SecondaryAction


@dataclass
class PendingDiagnostic:
    """A diagnostic whose primary line matched; secondary lines may follow."""

    kind: GrammarKind
    file: str
    line: int
    severity: DiagnosticSeverity
    column: int | None = None
    code: str | None = None
    message_parts: list[str] = field(default_factory=list)
    related: list[RelatedInformation] = field(default_factory=list)

    def finalize(self) -> Diagnostic:
        message = " ".join(self.message_parts)
        if not message:
            message = f"{self.kind.value} {self.severity.value}"
        return Diagnostic(
            file=self.file,
            line=self.line,
            column=self.column,
            severity=self.severity,
            message=message,
            source=self.kind.value,
            code=self.code,
            related=tuple(self.related),
        )


def _optional_int(value: str | None) -> int | None:
    return int(value) if value else None


@dataclass(frozen=True)
class Grammar:
    """One toolchain's diagnostic format.

    Primary patterns must provide ``file``, ``line`` and ``severity`` groups
    and may provide ``column``, ``code`` and ``message``.
    """

    kind: GrammarKind
    primary: tuple[re.Pattern[str], ...]
    secondary: tuple[SecondaryPattern, ...] = ()

    @property
    def is_multiline(self) -> bool:
        return bool(self.secondary)

    def try_primary(self, line: str) -> PendingDiagnostic | None:
        for pattern in self.primary:
            match = pattern.match(line)
            if match is None:
                continue
            groups = match.groupdict()
            pending = PendingDiagnostic(
                kind=self.kind,
                file=groups["file"].strip(),
                line=int(groups["line"]),
                column=_optional_int(groups.get("column")),
                severity=DiagnosticSeverity.from_label(groups["severity"]),
                code=groups.get("code") or None,
            )
            message = (groups.get("message") or "").strip()
            if message:
                pending.message_parts.append(message)
            return pending
        return None

    def try_secondary(self, line: str, pending: PendingDiagnostic) -> bool:
        """Fold a follow-up line into ``pending``; False if it does not belong."""
        for secondary in self.secondary:
            match = secondary.pattern.match(line)
            if match is None:
                continue
            groups = match.groupdict()
            if secondary.action == SecondaryAction.APPEND_MESSAGE:
                text = (groups.get("message") or "").strip()
                if text:
                    pending.message_parts.append(text)
            elif secondary.action == SecondaryAction.RELATE:
                pending.related.append(
                    RelatedInformation(
                        file=groups["file"].strip(),
                        line=int(groups["line"]),
                        column=_optional_int(groups.get("column")),
                        message=(groups.get("message") or "").strip(),
                    )
                )
            return True
        return False


CMAKE_GRAMMAR: Final[Grammar] = Grammar(
    kind=GrammarKind.CMAKE,
    primary=(
        # CMake Error at CMakeLists.txt:12 (add_executable):
        re.compile(
            r"^CMake (?P<severity>Error|Warning|Deprecation Warning|Deprecation Error)"
            r"(?: \(dev\))? at (?P<file>.+?):(?P<line>\d+)"
            r"(?: \((?P<code>[^)]+)\))?:?\s*$"
        ),
    ),
    secondary=(
        # Message body: indented paragraphs separated by blank lines
        SecondaryPattern(
            re.compile(r"^(?:\s+(?P<message>.*))?$"), SecondaryAction.APPEND_MESSAGE
        ),
    ),
)

MSVC_GRAMMAR: Final[Grammar] = Grammar(
    kind=GrammarKind.MSVC,
    primary=(
        # 1>C:\src\main.cpp(10,5): error C2065: 'x': undeclared identifier [C:\b\app.vcxproj]
        # C:\src\main.cpp(10,5): error: use of undeclared identifier (clang-cl)
        re.compile(
            r"^\s*(?:\d+>)?(?P<file>(?:[A-Za-z]:)?[^(:]+?)"
            r"\((?P<line>\d+)(?:,(?P<column>\d+))?\)\s*:\s+"
            r"(?P<severity>fatal error|error|warning|info|note)(?:\s+(?P<code>\w+))?\s*:\s*"
            r"(?P<message>.*?)(?:\s+\[[^\]]+\])?\s*$",
            re.IGNORECASE,
        ),
    ),
)

_GCC_LOCATION = r"(?P<file>(?:[A-Za-z]:)?[^:\s][^:]*?):(?P<line>\d+):(?:(?P<column>\d+):)?"

GCC_GRAMMAR: Final[Grammar] = Grammar(
    kind=GrammarKind.GCC,
    primary=(
        # main.cpp:42:7: error: expected ';' before '}' token
        re.compile(
            rf"^{_GCC_LOCATION}\s+"
            r"(?P<severity>fatal error|error|warning|note|remark|info)\s*:\s*"
            r"(?P<message>.*?)(?:\s+\[(?P<code>-W[^\]]+)\])?\s*$"
        ),
    ),
    secondary=(
        # main.cpp:30:6: note: previous declaration here
        SecondaryPattern(
            re.compile(rf"^{_GCC_LOCATION}\s+note\s*:\s*(?P<message>.*)$"),
            SecondaryAction.RELATE,
        ),
        # Source echo and caret lines: "   42 |   foo()", "      |   ^~~"
        SecondaryPattern(re.compile(r"^\s+\S.*$"), SecondaryAction.CONSUME),
    ),
)

GHS_GRAMMAR: Final[Grammar] = Grammar(
    kind=GrammarKind.GHS,
    primary=(
        # "src/main.c", line 5: warning #550-D: variable "x" was set but never used
        re.compile(
            r'^"(?P<file>[^"]+)",\s+line\s+(?P<line>\d+)'
            r"(?:\s+\(col\.\s+(?P<column>\d+)\))?:\s+"
            r"(?P<severity>fatal error|error|warning|remark)"
            r"(?:\s+#(?P<code>[\w-]+))?\s*:\s*(?P<message>.*)$"
        ),
    ),
    secondary=(
        SecondaryPattern(re.compile(r"^\s+\S.*$"), SecondaryAction.CONSUME),
    ),
)

# Priority order: the first grammar whose primary pattern matches owns the line
DEFAULT_GRAMMARS: Final[tuple[Grammar, ...]] = (
    CMAKE_GRAMMAR,
    MSVC_GRAMMAR,
    GCC_GRAMMAR,
    GHS_GRAMMAR,
)


class ProblemMatcher:
    """Stateful line classifier feeding a shared ``DiagnosticCollection``.

    Not thread-safe; use one matcher per output stream.
    """

    def __init__(
        self,
        collection: DiagnosticCollection,
        grammars: Iterable[Grammar] = DEFAULT_GRAMMARS,
    ):
        self._collection = collection
        self._grammars = tuple(grammars)
        self._state = MatcherState.IDLE
        self._pending: PendingDiagnostic | None = None

    @property
    def state(self) -> MatcherState:
        return self._state

    @property
    def collection(self) -> DiagnosticCollection:
        return self._collection

    def match(self, line: str) -> list[Diagnostic]:
        """Classify one line; returns diagnostics completed by it."""
        completed: list[Diagnostic] = []

        if self._state == MatcherState.AWAITING_SECONDARY and self._pending is not None:
            grammar = self._grammar_for(self._pending.kind)
            if grammar.try_secondary(line, self._pending):
                return completed
            completed.append(self._complete())

        for grammar in self._grammars:
            pending = grammar.try_primary(line)
            if pending is None:
                continue
            if grammar.is_multiline:
                self._pending = pending
                self._state = MatcherState.AWAITING_SECONDARY
            else:
                diagnostic = self._collection.add(pending.finalize())
                completed.append(diagnostic)
            break

        return completed

    def finish(self) -> list[Diagnostic]:
        """Complete a diagnostic still waiting for secondary lines (end of stream)."""
        if self._pending is None:
            return []
        return [self._complete()]

    def _complete(self) -> Diagnostic:
        assert self._pending is not None
        diagnostic = self._collection.add(self._pending.finalize())
        self._pending = None
        self._state = MatcherState.IDLE
        logger.debug(f"Matched {diagnostic.source} diagnostic: {diagnostic.file}:{diagnostic.line}")
        return diagnostic

    def _grammar_for(self, kind: GrammarKind) -> Grammar:
        for grammar in self._grammars:
            if grammar.kind == kind:
                return grammar
        raise KeyError(kind)


def parse_output(output: str, base_directory: str | None = None) -> DiagnosticCollection:
    """Parse complete console output into grouped diagnostics.

    Args:
        output: Console output of cmake, the generator or the compiler
        base_directory: Directory relative file names are resolved against

    Returns:
        Diagnostics grouped by absolute file path
    """
    collection = DiagnosticCollection(base_directory)
    matcher = ProblemMatcher(collection)
    for line in output.splitlines():
        matcher.match(line)
    matcher.finish()
    return collection
