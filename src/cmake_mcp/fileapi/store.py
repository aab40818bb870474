"""Published project model with construct-then-swap updates."""

from __future__ import annotations

import logging
from collections.abc import Callable

from .builder import ModelBuilder
from .model import ProjectSnapshot
from .reply import ReplyResolver

logger = logging.getLogger(__name__)


class ModelStore:
    """Holds the current ``ProjectSnapshot`` for one build directory.

    Readers always see either the previous or the next complete snapshot.
    A failed refresh leaves the current snapshot in place.
    """

    def __init__(self) -> None:
        self._snapshot: ProjectSnapshot | None = None
        self._listeners: list[Callable[[ProjectSnapshot], None]] = []
        self._last_error: Exception | None = None

    @property
    def snapshot(self) -> ProjectSnapshot | None:
        """Current published snapshot."""
        return self._snapshot

    @property
    def last_error(self) -> Exception | None:
        """Error of the most recent failed refresh, cleared on success."""
        return self._last_error

    def on_model_change(self, listener: Callable[[ProjectSnapshot], None]) -> None:
        """Register listener notified once per published snapshot."""
        self._listeners.append(listener)

    def publish(self, snapshot: ProjectSnapshot) -> None:
        """Replace the current snapshot and notify listeners."""
        self._snapshot = snapshot
        self._last_error = None
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Model listener error")

    def refresh(self, resolver: ReplyResolver, builder: ModelBuilder) -> ProjectSnapshot | None:
        """Rebuild from the newest reply and publish it.

        Returns:
            The new snapshot, or None when there is no reply to read

        Raises:
            FileApiError: The rebuild failed; the previous snapshot stays current
        """
        try:
            references = resolver.resolve()
            if references is None:
                return None
            snapshot = builder.build(references)
        except Exception as e:
            self._last_error = e
            logger.warning(f"Model refresh failed, keeping previous model: {e}")
            raise

        self.publish(snapshot)
        return snapshot
