"""Registry of running port-forward sessions, keyed by session path."""

from __future__ import annotations

from kubemirror.errors import ForwardStopError
from kubemirror.forward.session import ForwardSession
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import forwarders_active


class PortForwardRegistry:
    """Maps a session path to its session; at most one entry per path."""

    def __init__(self) -> None:
        self._sessions: dict[str, ForwardSession] = {}
        self._log = get_logger("forward.registry")

    async def register(self, session: ForwardSession) -> None:
        """Store ``session`` under its path.

        A different session already registered under the same path is
        stopped before it is replaced.
        """
        path = session.path
        previous = self._sessions.get(path)
        if previous is not None and previous is not session:
            self._log.info("forward_superseded", path=path)
            try:
                await previous.stop()
            finally:
                self._sessions[path] = session
        else:
            self._sessions[path] = session
        forwarders_active.set(len(self._sessions))

    async def unregister(self, path: str) -> None:
        """Stop and remove the session at ``path``; unknown paths are ignored."""
        session = self._sessions.get(path)
        if session is None:
            return
        try:
            await session.stop()
        finally:
            self._sessions.pop(path, None)
            forwarders_active.set(len(self._sessions))

    def lookup(self, path: str) -> ForwardSession | None:
        return self._sessions.get(path)

    def all(self) -> list[ForwardSession]:
        return list(self._sessions.values())

    async def terminate_all(self) -> None:
        """Stop and remove every session.

        Every session is attempted even if some fail; the first failure is
        re-raised as :class:`ForwardStopError` once the registry is empty.
        """
        sessions, self._sessions = self._sessions, {}
        forwarders_active.set(0)
        first_error: Exception | None = None
        for path, session in sessions.items():
            try:
                await session.stop()
            except Exception as exc:
                self._log.error("forward_stop_failed", path=path, error=str(exc))
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise ForwardStopError(f"failed to stop port-forward: {first_error}") from first_error

    def __contains__(self, path: object) -> bool:
        return path in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
