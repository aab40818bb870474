"""Build session - per-build-directory state machine with process management.

State machine:
IDLE → CONFIGURING | BUILDING → READY | FAILED | CANCELLED
     ↑___________________________________________|

The File API query and reply directories live inside the build directory,
so every configure or build for that directory runs under one lock.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable

from ..fileapi import (
    FileApiError,
    ModelBuilder,
    ModelStore,
    ProjectSnapshot,
    ReplyResolver,
    RequestManager,
)
from .policy import BuildCommand, BuildPolicy, CMakeSettings
from .runner import ProcessRunner
from .state import (
    BuildError,
    BuildResult,
    BuildState,
    DiagnosticCollection,
    ProcessResult,
    SpawnError,
)

logger = logging.getLogger(__name__)


class BuildSession:
    """Per-build-directory session with state machine.

    Thread-safe via asyncio.Lock. Only one configure or build runs at a
    time per build directory; further calls wait for the lock.
    """

    def __init__(
        self,
        settings: CMakeSettings,
        policy: BuildPolicy | None = None,
        store: ModelStore | None = None,
    ):
        """Initialize build session.

        Args:
            settings: CMake settings of the build tree
            policy: Build policy (created with defaults if not provided)
            store: Model store to publish into (created if not provided)
        """
        self._settings = settings
        self._policy = policy or BuildPolicy()
        self._store = store or ModelStore()
        self._state = BuildState.IDLE
        self._lock = asyncio.Lock()
        self._runner = ProcessRunner()
        self._cancel_requested = False
        self._last_result: BuildResult | None = None
        self._diagnostics = DiagnosticCollection()
        self._state_listeners: list[Callable[[BuildState], None]] = []
        self._output_listeners: list[Callable[[str, str], None]] = []

    @property
    def state(self) -> BuildState:
        """Current build state."""
        return self._state

    @property
    def settings(self) -> CMakeSettings:
        return self._settings

    @property
    def build_directory(self) -> str:
        assert self._settings.build_directory is not None
        return self._settings.build_directory

    @property
    def store(self) -> ModelStore:
        """Published project model of this build tree."""
        return self._store

    @property
    def model(self) -> ProjectSnapshot | None:
        return self._store.snapshot

    @property
    def last_result(self) -> BuildResult | None:
        """Last configure or build result."""
        return self._last_result

    @property
    def diagnostics(self) -> DiagnosticCollection:
        """Diagnostics of the most recent invocation."""
        return self._diagnostics

    @property
    def is_busy(self) -> bool:
        """Whether a configure or build is currently running."""
        return self._state in (BuildState.CONFIGURING, BuildState.BUILDING)

    def update_settings(self, settings: CMakeSettings) -> None:
        """Replace settings; takes effect with the next invocation."""
        if os.path.normcase(settings.build_directory or "") != os.path.normcase(
            self.build_directory
        ):
            raise ValueError("Build directory of a session cannot change")
        self._settings = settings

    def on_state_change(self, listener: Callable[[BuildState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def on_output(self, listener: Callable[[str, str], None]) -> None:
        """Register console output listener receiving (stream, line)."""
        self._output_listeners.append(listener)

    def _set_state(self, new_state: BuildState) -> None:
        """Update state and notify listeners."""
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.info(f"Build state: {old_state.value} -> {new_state.value}")
            for listener in self._state_listeners:
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("State listener error")

    def _emit_output(self, stream: str, line: str) -> None:
        logger.debug(f"[{stream}] {line}")
        for listener in self._output_listeners:
            listener(stream, line)

    def _model_tools(self) -> tuple[ReplyResolver, ModelBuilder]:
        resolver = ReplyResolver(self.build_directory)
        return resolver, ModelBuilder(resolver, build_type=self._settings.build_type)

    async def _run_command(
        self,
        command: list[str],
        cwd: str | None,
        base_directory: str,
        timeout: float | None,
    ) -> tuple[ProcessResult, bool]:
        """Run command; on timeout kill it and wait for the drained result.

        Returns:
            Tuple of (process result, timed out)

        Raises:
            SpawnError: If the process could not be started
        """
        run = asyncio.ensure_future(
            self._runner.run(
                command,
                cwd=cwd,
                env=self._settings.environment,
                base_directory=base_directory,
                on_line=self._emit_output,
            )
        )
        if timeout is None:
            return await run, False

        try:
            return await asyncio.wait_for(asyncio.shield(run), timeout=timeout), False
        except asyncio.TimeoutError:
            logger.warning(f"Timeout after {timeout}s, killing {command[0]}")
            self._runner.terminate()
            return await run, True

    async def _execute(
        self,
        command: BuildCommand,
        target: str | None = None,
        timeout: float | None = None,
    ) -> BuildResult:
        async with self._lock:
            self._cancel_requested = False
            self._diagnostics = DiagnosticCollection()
            self._set_state(
                BuildState.CONFIGURING if command == BuildCommand.CONFIGURE else BuildState.BUILDING
            )
            start_time = time.perf_counter()

            try:
                if command == BuildCommand.CONFIGURE:
                    cmd = self._policy.get_configure_command(self._settings)
                    os.makedirs(self.build_directory, exist_ok=True)
                    RequestManager(self.build_directory).ensure()
                    cwd = self.build_directory
                    base_directory = self._settings.source_directory
                else:
                    cmd = self._policy.get_build_command(self._settings, target)
                    cwd = self.build_directory
                    base_directory = self.build_directory

                logger.info(f"Running: {' '.join(cmd)}")
                process_result, timed_out = await self._run_command(
                    cmd, cwd, base_directory, timeout
                )

            except asyncio.CancelledError:
                self._runner.terminate()
                self._last_result = BuildResult(
                    success=False,
                    state=BuildState.CANCELLED,
                    command=command.value,
                    build_directory=self.build_directory,
                    configuration=self._settings.build_type,
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                    cancelled=True,
                )
                self._set_state(BuildState.CANCELLED)
                raise

            except SpawnError:
                self._set_state(BuildState.FAILED)
                raise

            except ValueError as e:
                # Policy validation errors
                self._set_state(BuildState.FAILED)
                raise BuildError(str(e)) from e

            except OSError as e:
                self._set_state(BuildState.FAILED)
                raise BuildError(f"Cannot prepare build directory: {e}") from e

            cancelled = self._cancel_requested
            self._diagnostics = process_result.diagnostics

            result = BuildResult(
                success=process_result.success and not cancelled and not timed_out,
                state=BuildState.READY,
                command=command.value,
                build_directory=self.build_directory,
                configuration=self._settings.build_type,
                exit_code=process_result.exit_code,
                signal=process_result.signal,
                diagnostics=process_result.diagnostics,
                output=process_result.output,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                cancelled=cancelled,
                timed_out=timed_out,
            )

            try:
                # The reply may be updated even when configure failed
                if command == BuildCommand.CONFIGURE and not cancelled and not timed_out:
                    try:
                        result.model_refreshed = self._refresh_model_locked() is not None
                    except FileApiError as e:
                        result.model_error = str(e)
            except Exception as e:
                logger.exception("Model refresh failed")
                result.success = False
                result.model_error = str(e)
                raise
            finally:
                if cancelled:
                    result.state = BuildState.CANCELLED
                elif not result.success:
                    result.state = BuildState.FAILED
                self._last_result = result
                self._set_state(result.state)

            return result

    def _refresh_model_locked(self) -> ProjectSnapshot | None:
        resolver, builder = self._model_tools()
        return self._store.refresh(resolver, builder)

    async def configure(self, timeout: float | None = None) -> BuildResult:
        """Run the configure step and rebuild the project model.

        Args:
            timeout: Optional limit in seconds; the process is killed on expiry

        Returns:
            Configure result; model refresh failures are reported in
            ``model_error`` rather than raised

        Raises:
            SpawnError: If cmake could not be started
            BuildError: If settings fail validation
        """
        return await self._execute(BuildCommand.CONFIGURE, timeout=timeout)

    async def build(self, target: str | None = None, timeout: float | None = None) -> BuildResult:
        """Build the tree, or a single target.

        Raises:
            SpawnError: If cmake could not be started
            BuildError: If settings fail validation
        """
        return await self._execute(BuildCommand.BUILD, target=target, timeout=timeout)

    async def refresh_model(self) -> ProjectSnapshot | None:
        """Rebuild the model from the current reply without running cmake.

        Returns:
            The new snapshot, or None when no reply exists yet

        Raises:
            FileApiError: If the reply cannot be read; the previous model stays
        """
        async with self._lock:
            return self._refresh_model_locked()

    async def cancel(self) -> bool:
        """Cancel the running configure or build.

        Returns:
            True if a process was running
        """
        if not self.is_busy:
            return False

        self._cancel_requested = True
        self._runner.terminate()
        return True
