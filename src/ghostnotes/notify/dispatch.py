"""
Notification dispatchers.

The proximity notifier only decides *when* to notify; a dispatcher hands the decision
to whatever can actually show it. Two variants exist, chosen once by
`select_dispatcher` from what the runtime can do:

- `ServiceWorkerDispatcher`: background push. Posts the notification to the push
  relay endpoint, which fans it out to the user's registered devices; the service
  worker on each device shows it.
- `DirectDispatcher`: foreground. Calls a local `show(title, body)` callable.

Both are fire-and-forget: `dispatch` never raises and never retries.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Literal, Protocol

from ghostnotes.config.settings import Settings
from ghostnotes.core.http import post_json
from ghostnotes.core.rate_limit import SlidingWindowRateLimiter
from ghostnotes.domain.models import NotificationIntent

logger = logging.getLogger(__name__)

PermissionState = Literal["granted", "denied", "default"]


class NotificationDispatcher(Protocol):
    @property
    def available(self) -> bool: ...

    def dispatch(self, user_id: str, intent: NotificationIntent) -> None: ...


class ServiceWorkerDispatcher:
    """Pushes notifications through the relay on a background worker thread."""

    def __init__(
        self,
        relay_url: str,
        *,
        secret: str | None = None,
        permission: PermissionState = "granted",
        timeout_seconds: float = 10,
        max_per_minute: int = 6,
    ):
        self._relay_url = relay_url
        self._secret = secret
        self._permission = permission
        self._timeout_seconds = timeout_seconds
        self._limiter = SlidingWindowRateLimiter(limit=max_per_minute, window_seconds=60.0)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ghostnotes-push")
        self._closed = False

    @property
    def available(self) -> bool:
        return self._permission == "granted" and not self._closed

    def _headers(self) -> dict[str, str]:
        if not self._secret:
            return {}
        return {"Authorization": f"Bearer {self._secret}"}

    def _send(self, payload: dict[str, Any]) -> None:
        post_json(
            self._relay_url,
            payload=payload,
            headers=self._headers(),
            timeout_seconds=self._timeout_seconds,
        )

    @staticmethod
    def _log_failure(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.warning("Push relay delivery failed: %s", str(exc))

    def dispatch(self, user_id: str, intent: NotificationIntent) -> None:
        if not self.available:
            return
        if not self._limiter.try_acquire():
            logger.info("Push relay rate limit reached; dropping notification for note %s", intent.note_id)
            return
        payload = {
            "userId": user_id,
            "title": intent.title,
            "body": intent.body,
            "data": {"noteId": intent.note_id},
        }
        try:
            future = self._executor.submit(self._send, payload)
        except RuntimeError as exc:
            logger.warning("Push relay executor unavailable: %s", str(exc))
            return
        future.add_done_callback(self._log_failure)

    def close(self, *, wait: bool = True) -> None:
        """Stop accepting pushes; with `wait`, block until queued ones are sent."""
        self._closed = True
        self._executor.shutdown(wait=wait)


class DirectDispatcher:
    """Shows notifications in-process via a `show(title, body)` callable."""

    def __init__(self, show: Callable[[str, str], Any], *, permission: PermissionState = "granted"):
        self._show = show
        self._permission = permission

    @property
    def available(self) -> bool:
        return self._permission == "granted"

    def dispatch(self, user_id: str, intent: NotificationIntent) -> None:
        if not self.available:
            return
        try:
            self._show(intent.title, intent.body)
        except Exception as exc:
            logger.warning("Direct notification for note %s failed: %s", intent.note_id, str(exc))


def select_dispatcher(
    settings: Settings,
    *,
    permission: PermissionState,
    show: Callable[[str, str], Any] | None = None,
) -> NotificationDispatcher | None:
    """Pick the dispatcher variant once, from what is configured/available."""
    cfg = settings.dispatch
    if cfg.relay_url:
        return ServiceWorkerDispatcher(
            cfg.relay_url,
            secret=cfg.relay_secret,
            permission=permission,
            timeout_seconds=cfg.timeout_seconds,
            max_per_minute=cfg.max_per_minute,
        )
    if show is not None:
        return DirectDispatcher(show, permission=permission)
    logger.info("No notification channel available; proximity alerts are disabled.")
    return None
