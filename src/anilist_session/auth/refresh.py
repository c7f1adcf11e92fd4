"""Single-flight coordination of token refreshes.

Providers may invalidate a refresh token the first time it is used.  Two
concurrent refreshes with the same token would therefore make the second one
fail, and a careless writer could then clobber the good session.  The
coordinator keeps **one** outstanding attempt; every caller that arrives while
it runs awaits the same outcome.

The attempt runs as a task owned by the coordinator, so cancelling one waiting
caller never aborts the shared network call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Union

from anilist_session.auth.errors import AuthFailure, FailureKind
from anilist_session.auth.models import AuthSession

_LOG = logging.getLogger("anilist-session.auth.refresh")

RefreshOutcome = Union[AuthSession, AuthFailure]
Refresher = Callable[[AuthSession], Awaitable[RefreshOutcome]]


class RefreshCoordinator:
    """Runs at most one refresh attempt at a time.

    Parameters
    ----------
    refresher:
        Coroutine function performing the actual refresh for a session
        snapshot.  It should return an :class:`AuthFailure` rather than raise;
        unexpected exceptions are logged and converted.
    """

    def __init__(self, refresher: Refresher) -> None:
        self._refresher = refresher
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Task[RefreshOutcome] | None = None
        self.attempts = 0

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def spawn(self, session: AuthSession) -> asyncio.Task[RefreshOutcome]:
        """Start (or join) the attempt for *session* without awaiting it."""
        async with self._lock:
            task = self._inflight
            if task is None or task.done():
                self.attempts += 1
                task = asyncio.create_task(self._run(session), name="anilist-session-refresh")
                task.add_done_callback(self._release)
                self._inflight = task
            else:
                _LOG.debug("Joining in-flight refresh")
            return task

    async def refresh_if_needed(self, session: AuthSession) -> RefreshOutcome:
        """Start or join the attempt and return its outcome."""
        task = await self.spawn(session)
        return await asyncio.shield(task)

    async def wait_idle(self) -> None:
        """Wait for the outstanding attempt, if any, to finish."""
        task = self._inflight
        if task is not None and not task.done():
            await asyncio.wait({task})

    # ---------------- internal helpers --------------------------------- #
    async def _run(self, session: AuthSession) -> RefreshOutcome:
        try:
            return await self._refresher(session)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # broad: joined callers must get a value, not a fault
            _LOG.exception("Refresh attempt crashed")
            return AuthFailure(FailureKind.PROVIDER_ERROR, f"refresh crashed: {type(exc).__name__}")

    def _release(self, task: asyncio.Task[RefreshOutcome]) -> None:
        if self._inflight is task:
            self._inflight = None
