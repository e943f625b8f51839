from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class IdentitySubscription:
    """Async iterator over identity changes; yields the new user id or None."""

    def __init__(self, hub: IdentityHub):
        self._hub = hub
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, user_id: str | None) -> None:
        if not self._closed:
            self._queue.put_nowait(user_id)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str | None:
        if self._closed:
            raise StopAsyncIteration
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every delivered change has been handled."""
        await self._queue.join()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._hub._unsubscribe(self)
        # Release anyone blocked in join() on events that will never be handled.
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()


class IdentityHub:
    """The device's current signed-in identity plus a change stream."""

    def __init__(self, user_id: str | None = None):
        self._user_id = user_id
        self._subscriptions: list[IdentitySubscription] = []

    def current_user_id(self) -> str | None:
        return self._user_id

    def subscribe(self) -> IdentitySubscription:
        subscription = IdentitySubscription(self)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: IdentitySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _emit(self, user_id: str | None) -> None:
        for subscription in list(self._subscriptions):
            subscription._deliver(user_id)

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        logger.info("Identity signed in: %s", user_id)
        self._user_id = str(user_id)
        self._emit(self._user_id)

    def sign_out(self) -> None:
        logger.info("Identity signed out (was %s)", self._user_id)
        self._user_id = None
        self._emit(None)
