"""Base list/watch loop with resync, relist recovery and back-off.

Wraps kubernetes_asyncio's Watch to provide:
- A full list before the first watch, and again whenever the resync
  interval has elapsed since the last one
- Resumable watches via resourceVersion and bookmarks
- Relist on 410 Gone, on ERROR watch events and after 3 consecutive
  failures
- Exponential back-off (1 s - 60 s) between failed attempts
- Cooperative shutdown driven by one shared ``asyncio.Event``
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from typing import Any

from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import (
    informer_backoff_seconds,
    informer_errors_total,
    informer_events_total,
    informer_relists_total,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BACKOFF_MIN_S: float = 1.0
_BACKOFF_MAX_S: float = 60.0
_BACKOFF_MULTIPLIER: float = 2.0

_MAX_CONSECUTIVE_FAILURES: int = 3
_MIN_WATCH_TIMEOUT_S: int = 1

# Statuses meaning the resource cannot be served for this scope at all
_UNSERVABLE_STATUSES: frozenset[int] = frozenset({403, 404, 405})


class BaseWatcher(ABC):
    """Async base class for list/watch driven mirrors.

    Subclasses implement :meth:`_list_func` (the collection list call),
    :meth:`_handle_event` (apply one watch event) and :meth:`_replace`
    (apply a full listing).

    Lifecycle::

        stop = asyncio.Event()
        watcher.start(stop)
        # ... runs until the event is set
        stop.set()
    """

    def __init__(self, name: str, resync: float) -> None:
        """Initialise the watcher.

        Args:
            name: Short identifier used in log/metric labels.
            resync: Seconds between full relists.
        """
        self._name = name
        self._resync = resync
        self._log = get_logger(f"watcher.{name}")

        self._resource_version: str = ""
        self._last_list_at: float | None = None
        self._task: asyncio.Task[None] | None = None

        # Failure tracking
        self._consecutive_failures: int = 0
        self._backoff_s: float = _BACKOFF_MIN_S

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def started(self) -> bool:
        return self._task is not None

    def start(self, stop: asyncio.Event) -> None:
        """Launch the background task; it runs until ``stop`` is set.

        Calling again after the first start is a no-op. Must be called from
        a running event loop.
        """
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run(stop), name=f"watcher-{self._name}")
        self._log.debug("watcher_started", watcher=self._name)

    async def join(self) -> None:
        """Wait until the background task has finished.

        Returns once the stop signal has been handled; a watcher that was
        never started returns immediately.
        """
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    # ------------------------------------------------------------------
    # Abstract interface for subclasses
    # ------------------------------------------------------------------

    @abstractmethod
    async def _list_func(self, **kwargs: Any) -> Any:
        """List (or, with ``watch=True``, watch) the mirrored collection."""

    @abstractmethod
    async def _handle_event(self, event_type: str, obj: dict[str, Any]) -> None:
        """Apply one ADDED/MODIFIED/DELETED event."""

    @abstractmethod
    def _replace(self, items: list[dict[str, Any]], resource_version: str) -> None:
        """Apply a complete listing."""

    def _on_unservable(self, status: int) -> None:  # noqa: B027
        """Called when the server refuses or does not serve the collection."""

    # ------------------------------------------------------------------
    # Internal loop
    # ------------------------------------------------------------------

    async def _run(self, stop: asyncio.Event) -> None:
        loop_task = asyncio.create_task(self._watch_loop(), name=f"watch-loop-{self._name}")
        try:
            await stop.wait()
        finally:
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
            self._log.debug("watcher_stopped", watcher=self._name)

    async def _watch_loop(self) -> None:
        """Main loop; only cancellation ends it."""
        while True:
            try:
                if self._relist_due():
                    await self._relist(reason="resync" if self._resource_version else "initial")
                await self._run_watch()
            except asyncio.CancelledError:
                return
            except ApiException as exc:
                await self._handle_api_exception(exc)
            except Exception as exc:
                await self._handle_loop_exception(exc)

    def _relist_due(self) -> bool:
        if not self._resource_version or self._last_list_at is None:
            return True
        return asyncio.get_running_loop().time() - self._last_list_at >= self._resync

    def _watch_timeout(self) -> int:
        """Seconds the next watch may stay open before the resync is due."""
        if self._last_list_at is None:
            return int(self._resync)
        remaining = self._resync - (asyncio.get_running_loop().time() - self._last_list_at)
        return max(_MIN_WATCH_TIMEOUT_S, int(remaining))

    async def _relist(self, reason: str) -> None:
        """Fetch a fresh snapshot and restart watching from its resourceVersion."""
        result = await self._list_func(watch=False)
        items, rv = _split_list_result(result)
        self._replace(items, rv)
        self._resource_version = rv
        self._last_list_at = asyncio.get_running_loop().time()
        informer_relists_total.labels(gvr=self._name, reason=reason).inc()
        self._log.debug("relist_complete", watcher=self._name, reason=reason, count=len(items), resource_version=rv)
        self._reset_backoff()

    async def _run_watch(self) -> None:
        """Open one watch stream and iterate until it times out or raises."""
        w = watch.Watch()
        try:
            async for raw_event in w.stream(
                self._list_func,
                resource_version=self._resource_version,
                allow_watch_bookmarks=True,
                timeout_seconds=self._watch_timeout(),
            ):
                event_type: str = raw_event.get("type", "")
                obj = raw_event.get("object")
                if not isinstance(obj, dict):
                    obj = raw_event.get("raw_object", {})
                if not isinstance(obj, dict):
                    obj = {}

                if event_type == "ERROR":
                    raise ApiException(status=obj.get("code", 500), reason=str(obj.get("message", "")))

                new_rv = _extract_rv(obj)
                if new_rv:
                    self._resource_version = new_rv
                if event_type == "BOOKMARK":
                    continue

                informer_events_total.labels(gvr=self._name, event_type=event_type).inc()
                await self._handle_event(event_type, obj)
            # Server closed the stream at timeout_seconds: a normal end.
            self._consecutive_failures = 0
        finally:
            await w.close()

    async def _handle_api_exception(self, exc: ApiException) -> None:
        """Route an ApiException to the correct recovery path."""
        status = exc.status
        informer_errors_total.labels(gvr=self._name, status_code=str(status)).inc()

        if status == 410:
            # Gone: resource version too old, relist on the next pass
            self._log.info("watch_gone_410", watcher=self._name)
            self._resource_version = ""
            return

        self._consecutive_failures += 1
        if status in _UNSERVABLE_STATUSES:
            # Reported once; later retries stay at debug level
            log = self._log.warning if self._consecutive_failures == 1 else self._log.debug
            log("watch_unservable", watcher=self._name, status=status, reason=exc.reason)
            self._on_unservable(status)
        else:
            self._log.warning(
                "watch_api_error",
                watcher=self._name,
                status=status,
                reason=exc.reason,
                consecutive_failures=self._consecutive_failures,
            )
        if self._consecutive_failures >= _MAX_CONSECUTIVE_FAILURES:
            self._resource_version = ""
        await self._backoff(str(status))

    async def _handle_loop_exception(self, exc: Exception) -> None:
        """Handle unexpected exceptions from the watch loop."""
        self._consecutive_failures += 1
        self._log.error(
            "watch_unexpected_error",
            watcher=self._name,
            error=str(exc),
            consecutive_failures=self._consecutive_failures,
            exc_info=True,
        )
        if self._consecutive_failures >= _MAX_CONSECUTIVE_FAILURES:
            self._resource_version = ""
        await self._backoff("unexpected")

    # ------------------------------------------------------------------
    # Back-off
    # ------------------------------------------------------------------

    async def _backoff(self, reason: str) -> None:
        """Sleep for the current back-off duration, then increase it."""
        delay = min(self._backoff_s, _BACKOFF_MAX_S)
        self._log.debug("watcher_backoff", watcher=self._name, reason=reason, delay_s=delay)
        informer_backoff_seconds.labels(gvr=self._name).observe(delay)
        await asyncio.sleep(delay)
        self._backoff_s = min(self._backoff_s * _BACKOFF_MULTIPLIER, _BACKOFF_MAX_S)

    def _reset_backoff(self) -> None:
        self._backoff_s = _BACKOFF_MIN_S
        self._consecutive_failures = 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _extract_rv(obj: dict[str, Any]) -> str:
    """Extract resourceVersion from a raw object dict."""
    metadata = obj.get("metadata")
    if isinstance(metadata, dict):
        rv = metadata.get("resourceVersion", "")
        if rv:
            return str(rv)
    return ""


def _split_list_result(result: Any) -> tuple[list[dict[str, Any]], str]:
    """Return (items, resourceVersion) from a raw list response."""
    if not isinstance(result, dict):
        return [], ""
    items = result.get("items") or []
    if not isinstance(items, list):
        items = []
    return [item for item in items if isinstance(item, dict)], _extract_rv(result)
