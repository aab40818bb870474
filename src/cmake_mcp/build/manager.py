"""Build manager - singleton orchestrating all build sessions.

Provides:
- Per-build-directory session management
- Configure + model refresh in one call
- Global build cancellation
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

from .policy import BuildPolicy, CMakeSettings
from .session import BuildSession
from .state import BuildResult, BuildState

logger = logging.getLogger(__name__)


class BuildManager:
    """Singleton manager for build sessions across build directories.

    Usage:
        manager = BuildManager()
        result = await manager.configure(CMakeSettings("/path/to/source"))
    """

    _instance: BuildManager | None = None

    def __new__(cls) -> BuildManager:
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize manager (only once)."""
        if self._initialized:
            return
        self._sessions: dict[str, BuildSession] = {}
        self._global_listeners: list[Callable[[str, BuildState], None]] = []
        self._policy = BuildPolicy()
        self._initialized = True

    def _normalize_path(self, path: str) -> str:
        """Normalize path for consistent key lookup."""
        return os.path.normcase(os.path.normpath(os.path.abspath(path)))

    def get_session(self, settings: CMakeSettings) -> BuildSession:
        """Get or create the build session for the settings' build directory.

        An existing session picks up the new settings for its next invocation.

        Note: This method is not thread-safe. It should be called from a single
        asyncio event loop. For MCP servers, this is guaranteed by the framework.
        """
        assert settings.build_directory is not None
        build_directory = settings.build_directory
        key = self._normalize_path(build_directory)
        session = self._sessions.get(key)
        if session is None:
            session = BuildSession(settings, self._policy)
            session.on_state_change(
                lambda state: self._notify_listeners(build_directory, state)
            )
            self._sessions[key] = session
            logger.debug(f"Created build session for {build_directory}")
        else:
            session.update_settings(settings)
        return session

    def find_session(self, build_directory: str) -> BuildSession | None:
        """Get an existing session without creating one."""
        return self._sessions.get(self._normalize_path(build_directory))

    def _notify_listeners(self, build_directory: str, state: BuildState) -> None:
        """Notify global state listeners."""
        for listener in self._global_listeners:
            try:
                listener(build_directory, state)
            except Exception:
                logger.exception("Global build listener error")

    def on_build_state_change(
        self, listener: Callable[[str, BuildState], None]
    ) -> None:
        """Register global build state change listener.

        Listener receives (build_directory, new_state).
        """
        self._global_listeners.append(listener)

    async def configure(
        self, settings: CMakeSettings, timeout: float | None = None
    ) -> BuildResult:
        """Configure the build tree described by settings."""
        return await self.get_session(settings).configure(timeout=timeout)

    async def build(
        self,
        settings: CMakeSettings,
        target: str | None = None,
        timeout: float | None = None,
    ) -> BuildResult:
        """Build the tree described by settings, optionally one target."""
        return await self.get_session(settings).build(target=target, timeout=timeout)

    async def cancel(self, build_directory: str) -> bool:
        """Cancel the running invocation in a build directory.

        Returns:
            True if a process was cancelled
        """
        session = self.find_session(build_directory)
        if session is not None:
            return await session.cancel()
        return False

    async def cancel_all(self) -> int:
        """Cancel all running invocations.

        Returns:
            Number of invocations cancelled
        """
        cancelled = 0
        for session in self._sessions.values():
            if await session.cancel():
                cancelled += 1
        return cancelled

    def get_state(self, build_directory: str) -> BuildState | None:
        """Get current build state, or None if no session exists."""
        session = self.find_session(build_directory)
        return session.state if session is not None else None

    def get_last_result(self, build_directory: str) -> BuildResult | None:
        session = self.find_session(build_directory)
        return session.last_result if session is not None else None

    def get_all_states(self) -> dict[str, BuildState]:
        """Get build states keyed by normalized build directory."""
        return {path: session.state for path, session in self._sessions.items()}

    def clear_session(self, build_directory: str) -> bool:
        """Remove the session for a build directory.

        Returns:
            True if session was removed
        """
        key = self._normalize_path(build_directory)
        if key in self._sessions:
            del self._sessions[key]
            return True
        return False

    def to_dict(self) -> dict[str, Any]:
        """Get manager status as dictionary."""
        return {
            "sessions": {
                path: {
                    "state": session.state.value,
                    "lastResult": (
                        session.last_result.to_summary() if session.last_result else None
                    ),
                    "hasModel": session.model is not None,
                }
                for path, session in self._sessions.items()
            }
        }
