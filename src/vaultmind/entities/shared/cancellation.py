"""Cooperative cancellation tokens.

A token is handed down the pipeline so that long awaits (LLM calls, engine
queries) can observe cancellation. Child tokens are linked to their parent:
cancelling the parent cancels every child, never the reverse.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from vaultmind.entities.shared.errors import RunCancelledError

logger = logging.getLogger(__name__)


def _noop() -> None:
    pass


class CancellationToken:
    """One-shot cancellation flag with callbacks and an awaitable event."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._unlink: Callable[[], None] = _noop

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Set the flag and fire registered callbacks once."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.warning("Cancellation callback raised", exc_info=True)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` to run on cancellation.

        Runs immediately when the token is already cancelled.

        Returns:
            A function that unregisters the callback.
        """
        if self._event.is_set():
            callback()
            return _noop
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError()

    def child(self) -> CancellationToken:
        """Return a new token cancelled whenever this one is.

        Call ``detach()`` on the child once the work it guards is over.
        """
        linked = CancellationToken()
        linked._unlink = self.add_callback(lambda: linked.cancel(self._reason))
        return linked

    def detach(self) -> None:
        """Unlink this token from the parent it was created from."""
        self._unlink()
        self._unlink = _noop


def ensure_token(token: CancellationToken | None) -> CancellationToken:
    return token if token is not None else CancellationToken()
