"""Process runner - launches cmake and matches its output live.

stdout and stderr are pumped concurrently, each through its own
LineSplitter + ProblemMatcher pipeline, into one shared diagnostics
collection. A run completes only after both streams reach EOF and the
process has exited, so output drained after the exit event is not lost.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections import deque
from collections.abc import Callable

from .lines import decode_chunks, split_lines
from .matchers import ProblemMatcher
from .state import DiagnosticCollection, ProcessResult, SpawnError

logger = logging.getLogger(__name__)

# Output buffer limits (security: prevent DoS)
MAX_OUTPUT_LINES: int = 2_000

LineCallback = Callable[[str, str], None]


class ProcessRunner:
    """Runs one external process at a time and collects its diagnostics."""

    def __init__(self) -> None:
        self._process: asyncio.subprocess.Process | None = None
        self._starting = False
        self._kill_pending = False

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def run(
        self,
        command: list[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        base_directory: str | None = None,
        on_line: LineCallback | None = None,
    ) -> ProcessResult:
        """Run command until exit and both output streams are drained.

        Args:
            command: Executable and arguments
            cwd: Working directory
            env: Environment overrides applied on top of os.environ
            base_directory: Directory relative diagnostic paths resolve against
            on_line: Optional callback receiving (stream name, line)

        Returns:
            Exit disposition with diagnostics; a nonzero exit is not an error

        Raises:
            SpawnError: If the process could not be started
        """
        environment = dict(os.environ)
        if env:
            environment.update(env)

        start_time = time.perf_counter()
        self._kill_pending = False
        self._starting = True
        try:
            # Never use a shell (security)
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=environment,
            )
        except OSError as e:
            raise SpawnError(command[0], e.strerror or str(e)) from e
        finally:
            self._starting = False

        process = self._process
        logger.debug(f"Started {command[0]} with PID {process.pid}")
        if self._kill_pending:
            logger.info(f"Kill requested while starting {command[0]}")
            self.terminate()

        diagnostics = DiagnosticCollection(base_directory or cwd)
        output: deque[str] = deque(maxlen=MAX_OUTPUT_LINES)

        async def pump(stream: asyncio.StreamReader | None, name: str) -> None:
            if stream is None:
                return
            matcher = ProblemMatcher(diagnostics)
            async for line in split_lines(decode_chunks(stream)):
                output.append(line)
                if on_line is not None:
                    try:
                        on_line(name, line)
                    except Exception:
                        logger.exception("Output listener error")
                matcher.match(line)
            matcher.finish()

        try:
            _, _, returncode = await asyncio.gather(
                pump(process.stdout, "stdout"),
                pump(process.stderr, "stderr"),
                process.wait(),
            )
        except asyncio.CancelledError:
            self.terminate()
            raise
        finally:
            self._process = None

        exit_code: int | None = returncode
        signal: int | None = None
        if returncode is not None and returncode < 0:
            # POSIX: negative return code is the terminating signal
            exit_code = None
            signal = -returncode

        duration = (time.perf_counter() - start_time) * 1000
        logger.debug(f"{command[0]} finished: exit_code={exit_code}, signal={signal}")
        return ProcessResult(
            exit_code=exit_code,
            signal=signal,
            diagnostics=diagnostics,
            output=list(output),
            duration_ms=duration,
        )

    def terminate(self) -> bool:
        """Kill the running process; its pending run resolves as abnormal.

        A kill requested while the process is still being started is
        delivered as soon as it exists.

        Returns:
            True if a process was signalled or a pending start will be killed
        """
        process = self._process
        if process is None and self._starting:
            self._kill_pending = True
            return True
        if process is None or process.returncode is not None:
            return False
        try:
            process.kill()
        except ProcessLookupError:
            return False
        logger.info(f"Killed process {process.pid}")
        return True
