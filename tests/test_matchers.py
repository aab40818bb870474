"""Tests for problem matchers - diagnostics from console output."""

import os

from cmake_mcp.build.matchers import (
    GCC_GRAMMAR,
    MSVC_GRAMMAR,
    GrammarKind,
    MatcherState,
    ProblemMatcher,
    parse_output,
)
from cmake_mcp.build.state import DiagnosticCollection, DiagnosticSeverity

BASE = os.path.abspath(os.path.join(os.sep, "work", "project"))


def _matcher() -> ProblemMatcher:
    return ProblemMatcher(DiagnosticCollection(BASE))


class TestCMakeGrammar:
    """Tests for CMake configure messages."""

    def test_error_with_multiline_message(self):
        """Test a CMake error collects its indented message lines."""
        output = "\n".join(
            [
                "CMake Error at CMakeLists.txt:12 (add_executable):",
                "  Cannot find source file:",
                "",
                "    missing.cpp",
                "",
                "-- Configuring incomplete, errors occurred!",
            ]
        )

        collection = parse_output(output, BASE)

        diagnostics = collection.all()
        assert len(diagnostics) == 1
        diag = diagnostics[0]
        assert diag.file == os.path.join(BASE, "CMakeLists.txt")
        assert diag.line == 12
        assert diag.severity == DiagnosticSeverity.ERROR
        assert diag.code == "add_executable"
        assert diag.source == "cmake"
        assert diag.message == "Cannot find source file: missing.cpp"

    def test_dev_warning(self):
        """Test developer warnings map to WARNING."""
        output = "CMake Warning (dev) at cmake/deps.cmake:3 (find_package):\n  Policy CMP0167 is not set.\nThis warning is for project developers.\n"

        diag = parse_output(output, BASE).all()[0]

        assert diag.severity == DiagnosticSeverity.WARNING
        assert diag.file == os.path.join(BASE, "cmake", "deps.cmake")
        assert diag.message == "Policy CMP0167 is not set."

    def test_deprecation_warning(self):
        output = "CMake Deprecation Warning at CMakeLists.txt:1 (cmake_minimum_required):\n  Compatibility with CMake < 3.5 will be removed.\n"

        diag = parse_output(output, BASE).all()[0]

        assert diag.severity == DiagnosticSeverity.WARNING
        assert diag.line == 1

    def test_matcher_awaits_secondary_after_primary(self):
        """Test the state machine after a multi-line primary."""
        matcher = _matcher()

        completed = matcher.match("CMake Error at CMakeLists.txt:4 (project):")

        assert completed == []
        assert matcher.state == MatcherState.AWAITING_SECONDARY

        matcher.match("  Generator mismatch")
        completed = matcher.match("-- Configuring incomplete")

        assert len(completed) == 1
        assert completed[0].message == "Generator mismatch"
        assert matcher.state == MatcherState.IDLE

    def test_finish_completes_pending(self):
        """Test end of stream completes a waiting diagnostic."""
        matcher = _matcher()
        matcher.match("CMake Error at CMakeLists.txt:4 (project):")
        matcher.match("  No CMAKE_CXX_COMPILER could be found.")

        completed = matcher.finish()

        assert len(completed) == 1
        assert len(matcher.collection) == 1
        assert matcher.state == MatcherState.IDLE

    def test_message_without_body_gets_placeholder(self):
        diag = parse_output("CMake Error at CMakeLists.txt:9:\n", BASE).all()[0]
        assert diag.message == "cmake error"


class TestMsvcGrammar:
    """Tests for MSVC diagnostics."""

    def test_error_with_column_and_project_suffix(self):
        """Test MSBuild prefix and project suffix are stripped."""
        line = r"1>C:\src\main.cpp(10,5): error C2065: 'x': undeclared identifier [C:\b\app.vcxproj]"

        pending = MSVC_GRAMMAR.try_primary(line)

        assert pending is not None
        assert pending.file == r"C:\src\main.cpp"
        assert pending.line == 10
        assert pending.column == 5
        assert pending.code == "C2065"
        assert pending.severity == DiagnosticSeverity.ERROR
        assert pending.message_parts == ["'x': undeclared identifier"]

    def test_warning_without_column(self):
        line = r"C:\src\util.cpp(7): warning C4100: 'argc': unreferenced formal parameter"

        pending = MSVC_GRAMMAR.try_primary(line)

        assert pending is not None
        assert pending.column is None
        assert pending.severity == DiagnosticSeverity.WARNING

    def test_clang_cl_error_without_code(self):
        """Test clang-cl style lines where the diagnostic code is absent."""
        matcher = _matcher()

        completed = matcher.match(r"C:\src\main.cpp(10,5): error: use of undeclared identifier 'x'")

        assert len(completed) == 1
        assert completed[0].source == GrammarKind.MSVC.value
        assert completed[0].line == 10
        assert completed[0].column == 5
        assert completed[0].code is None
        assert completed[0].message == "use of undeclared identifier 'x'"

    def test_single_line_completed_immediately(self):
        """Test single-line grammars never wait for secondary lines."""
        matcher = _matcher()

        completed = matcher.match(r"src\main.cpp(3): error C2143: syntax error: missing ';'")

        assert len(completed) == 1
        assert completed[0].source == GrammarKind.MSVC.value
        assert matcher.state == MatcherState.IDLE


class TestGccGrammar:
    """Tests for GCC and Clang diagnostics."""

    def test_error_with_relative_path(self):
        """Test relative paths resolve against the base directory."""
        collection = parse_output("../src/main.cpp:42:7: error: expected ';' before '}' token\n", BASE)

        diag = collection.all()[0]

        assert diag.file == os.path.normpath(os.path.join(BASE, "..", "src", "main.cpp"))
        assert diag.line == 42
        assert diag.column == 7
        assert diag.message == "expected ';' before '}' token"

    def test_warning_flag_becomes_code(self):
        pending = GCC_GRAMMAR.try_primary(
            "/src/a.c:3:9: warning: unused variable 'y' [-Wunused-variable]"
        )

        assert pending is not None
        assert pending.code == "-Wunused-variable"
        assert pending.message_parts == ["unused variable 'y'"]

    def test_without_column(self):
        pending = GCC_GRAMMAR.try_primary("/src/a.c:3: error: bad")
        assert pending is not None
        assert pending.column is None
        assert pending.line == 3

    def test_fatal_error(self):
        pending = GCC_GRAMMAR.try_primary("/src/a.c:1:10: fatal error: foo.h: No such file or directory")
        assert pending is not None
        assert pending.severity == DiagnosticSeverity.ERROR
        assert pending.message_parts == ["foo.h: No such file or directory"]

    def test_note_attaches_to_previous_error(self):
        """Test a following note becomes related information."""
        output = "\n".join(
            [
                "/src/main.cpp:10:6: error: redefinition of 'void f()'",
                "   10 | void f() {}",
                "      |      ^",
                "/src/main.cpp:5:6: note: 'void f()' previously defined here",
                "    5 | void f() {}",
                "      |      ^",
                "ninja: build stopped: subcommand failed.",
            ]
        )

        diagnostics = parse_output(output, BASE).all()

        assert len(diagnostics) == 1
        diag = diagnostics[0]
        assert diag.severity == DiagnosticSeverity.ERROR
        assert len(diag.related) == 1
        assert diag.related[0].line == 5
        assert diag.related[0].message == "'void f()' previously defined here"

    def test_standalone_note_is_info(self):
        diagnostics = parse_output("/src/main.cpp:5:6: note: declared here\n", BASE).all()
        assert diagnostics[0].severity == DiagnosticSeverity.INFO

    def test_windows_drive_path(self):
        pending = GCC_GRAMMAR.try_primary(r"C:\src\main.cpp:10:5: error: boom")
        assert pending is not None
        assert pending.file == r"C:\src\main.cpp"
        assert pending.line == 10

    def test_consecutive_errors_both_reported(self):
        """Test a primary line completes the previous diagnostic."""
        output = "/a.c:1:1: error: one\n/a.c:2:1: error: two\n"

        diagnostics = parse_output(output, BASE).all()

        assert [d.message for d in diagnostics] == ["one", "two"]


class TestGhsGrammar:
    """Tests for Green Hills diagnostics."""

    def test_warning_with_code(self):
        output = '"src/main.c", line 5: warning #550-D: variable "x" was set but never used\n    int x = 1;\n        ^\n'

        diagnostics = parse_output(output, BASE).all()

        assert len(diagnostics) == 1
        diag = diagnostics[0]
        assert diag.file == os.path.join(BASE, "src", "main.c")
        assert diag.line == 5
        assert diag.code == "550-D"
        assert diag.severity == DiagnosticSeverity.WARNING
        assert diag.source == "ghs"

    def test_column(self):
        output = '"/src/x.c", line 8 (col. 3): error #20: identifier "q" is undefined\n'
        diag = parse_output(output, BASE).all()[0]
        assert diag.column == 3
        assert diag.severity == DiagnosticSeverity.ERROR


class TestProblemMatcher:
    """Tests for matcher behaviour across grammars."""

    def test_unrelated_output_ignored(self):
        """Test progress output produces no diagnostics."""
        output = "\n".join(
            [
                "-- The CXX compiler identification is GNU 13.2.0",
                "-- Configuring done (0.3s)",
                "[1/4] Building CXX object CMakeFiles/app.dir/main.cpp.o",
                "ninja: no work to do.",
            ]
        )
        assert len(parse_output(output, BASE)) == 0

    def test_grouped_by_file_in_first_seen_order(self):
        """Test collection groups by absolute path keeping first-seen order."""
        output = "\n".join(
            [
                "/src/b.c:1:1: warning: w1",
                "/src/a.c:2:1: error: e1",
                "/src/b.c:3:1: warning: w2",
            ]
        )

        collection = parse_output(output, BASE)

        assert collection.files() == [
            os.path.normpath(os.path.abspath("/src/b.c")),
            os.path.normpath(os.path.abspath("/src/a.c")),
        ]
        assert [d.line for d in collection.get("/src/b.c")] == [1, 3]
        assert collection.count(DiagnosticSeverity.WARNING) == 2
        assert collection.count(DiagnosticSeverity.ERROR) == 1

    def test_cmake_then_compiler_output(self):
        """Test a CMake message ends where compiler output starts at column 0."""
        output = "\n".join(
            [
                "CMake Warning at CMakeLists.txt:20 (message):",
                "  Legacy option used",
                "/src/main.cpp:1:1: error: boom",
            ]
        )

        diagnostics = parse_output(output, BASE).all()

        assert [d.source for d in diagnostics] == ["cmake", "gcc"]

    def test_custom_grammar_set(self):
        """Test grammars outside the configured set are not applied."""
        matcher = ProblemMatcher(DiagnosticCollection(BASE), grammars=[MSVC_GRAMMAR])

        assert matcher.match("/src/main.cpp:1:1: error: boom") == []
        matcher.finish()
        assert len(matcher.collection) == 0
