"""Boolean senior setting kept in sync with one field of the senior document.

A ToggleSetting follows the device identity: it loads the field when a user
signs in, falls back to its logged-out value when they sign out, and applies
writes optimistically, reverting when the store rejects them.

Two write policies exist:

* ``WritePolicy.SERIAL``: every ``set_value`` call waits its turn on a FIFO
  lock, so store writes happen one at a time and in the order they were
  requested. A failed write reverts to the value held just before that call.
* ``WritePolicy.COALESCE``: while a write is in flight, newer requests only
  overwrite a single pending slot and return True straight away. The writer
  applies the latest pending value once its own write lands. A failed write
  drops the pending slot and reverts to the last value the store confirmed.

Writes requested while a load is running wait for it to finish, and a load
waits for store writes already in flight before it fetches. Every load or
logout starts a new generation; a write that completes under an older
generation never touches the visible value.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, replace
from enum import Enum

from services.errors import NotAuthenticatedError
from services.identity import IdentityHub, IdentitySubscription
from services.notifier import ChangeNotifier
from services.senior_store import SeniorStore

logger = logging.getLogger(__name__)


class LoadingState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


class WritePolicy(str, Enum):
    SERIAL = "serial"
    COALESCE = "coalesce"


@dataclass(frozen=True)
class ToggleSpec:
    name: str
    field: str
    first_load_default: bool  # used when the senior has never written the field
    logged_out_value: bool
    policy: WritePolicy = WritePolicy.SERIAL

    def with_policy(self, policy: WritePolicy | str) -> ToggleSpec:
        if not isinstance(policy, WritePolicy):
            policy = WritePolicy(str(policy).strip().lower())
        return replace(self, policy=policy)


class ToggleSetting(ChangeNotifier):
    def __init__(self, spec: ToggleSpec, store: SeniorStore, identity: IdentityHub):
        super().__init__()
        self.spec = spec
        self._store = store
        self._identity = identity
        self._value = spec.logged_out_value
        self._confirmed = spec.logged_out_value
        self._owner: str | None = None
        self._state = LoadingState.LOADING
        self._generation = 0
        self._loaded = asyncio.Event()
        self._write_lock = asyncio.Lock()
        self._writer_generation: int | None = None
        self._pending: bool | None = None
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._subscription: IdentitySubscription | None = None
        self._listener_task: asyncio.Task | None = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def current_value(self) -> bool:
        return self._value

    @property
    def confirmed_value(self) -> bool:
        return self._confirmed

    @property
    def loading_state(self) -> LoadingState:
        return self._state

    @property
    def is_loading(self) -> bool:
        return self._state is LoadingState.LOADING

    @property
    def owner_identity(self) -> str | None:
        return self._owner

    # ── Lifecycle ─────────────────────────────────────────────

    async def initialize(self) -> None:
        """Start following identity changes and load the current user, if any."""
        if self._subscription is not None:
            await self.close()
        subscription = self._identity.subscribe()
        self._subscription = subscription
        self._listener_task = asyncio.create_task(
            self._listen(subscription),
            name=f"{self.spec.name}-identity-listener",
        )
        user_id = self._identity.current_user_id()
        if user_id is None:
            self._reset()
        else:
            await self._load(user_id)

    async def close(self) -> None:
        """Unsubscribe from identity changes. In-flight writes are left to finish."""
        subscription, self._subscription = self._subscription, None
        task, self._listener_task = self._listener_task, None
        if subscription is not None:
            subscription.close()
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    async def settle(self) -> None:
        """Wait until every identity change seen so far has been handled."""
        if self._subscription is not None:
            await self._subscription.join()

    async def _listen(self, subscription: IdentitySubscription) -> None:
        async for user_id in subscription:
            try:
                await self._handle_identity(user_id)
            except Exception:
                logger.exception("Identity change handling failed for %s", self.spec.name)
            finally:
                subscription.task_done()

    async def _handle_identity(self, user_id: str | None) -> None:
        if user_id is None:
            self._reset()
            return
        if user_id == self._owner and self._state is not LoadingState.UNLOADED:
            return
        await self._load(user_id)

    async def _load(self, user_id: str) -> None:
        switching = user_id != self._owner
        self._generation += 1
        generation = self._generation
        self._owner = user_id
        self._state = LoadingState.LOADING
        self._loaded.clear()
        self.notify_listeners()
        try:
            # The snapshot must not predate a write that is still on its way to the store.
            await self._idle.wait()
            snapshot = await self._store.get_senior_state(user_id)
        except Exception as e:
            logger.warning("Error loading %s for user %s: %s", self.spec.name, user_id, e)
            if generation == self._generation and switching:
                self._value = self._confirmed = self.spec.first_load_default
        else:
            if generation == self._generation:
                stored = snapshot.field_value(self.spec.field) if snapshot is not None else None
                value = self.spec.first_load_default if stored is None else bool(stored)
                self._value = self._confirmed = value
                logger.info("Loaded %s=%s for user %s", self.spec.name, value, user_id)
        finally:
            # A newer load or a logout owns the state now.
            if generation == self._generation:
                self._state = LoadingState.READY
                self._loaded.set()
                self.notify_listeners()

    def _reset(self) -> None:
        self._generation += 1
        self._owner = None
        self._pending = None
        self._value = self._confirmed = self.spec.logged_out_value
        self._state = LoadingState.UNLOADED
        self._loaded.set()
        self.notify_listeners()

    async def _wait_for_load(self) -> None:
        while self._subscription is not None and self._state is LoadingState.LOADING:
            await self._loaded.wait()

    # ── Writes ────────────────────────────────────────────────

    async def set_value(self, desired: bool) -> bool:
        """Request a new value.

        Returns True when the value was durably applied, was already current,
        or (coalescing policy only) was queued behind an in-flight write.
        Returns False when there is no signed-in identity or the store write
        failed; the setting has been reverted by then. Never raises store
        errors. A request made while the setting is loading is decided
        against the loaded value.
        """
        desired = bool(desired)
        if self.spec.policy is WritePolicy.COALESCE:
            return await self._set_coalescing(desired)
        async with self._write_lock:
            await self._wait_for_load()
            return await self._apply_once(desired)

    def _writable_identity(self) -> str | None:
        user_id = self._identity.current_user_id()
        if user_id is None:
            logger.warning("Cannot update %s: %s", self.spec.name, NotAuthenticatedError("no signed-in user"))
            return None
        if user_id != self._owner or self._state is not LoadingState.READY:
            logger.warning("Cannot update %s: state for user %s is not loaded", self.spec.name, user_id)
            return None
        return user_id

    def _show(self, value: bool) -> None:
        self._value = value
        self.notify_listeners()

    def _revert(self, generation: int, value: bool) -> None:
        if generation != self._generation:
            # Identity changed while the write was in flight; nothing of ours to revert.
            return
        self._show(value)

    async def _write(self, user_id: str, value: bool) -> None:
        self._in_flight += 1
        self._idle.clear()
        try:
            await self._store.atomic_update_senior_field(user_id, self.spec.field, value)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    async def _apply_once(self, desired: bool) -> bool:
        user_id = self._writable_identity()
        if user_id is None:
            return False
        if desired == self._value:
            logger.debug("%s already %s, skipping write", self.spec.name, desired)
            return True

        generation = self._generation
        previous = self._value
        self._show(desired)
        try:
            await self._write(user_id, desired)
        except asyncio.CancelledError:
            self._revert(generation, previous)
            raise
        except Exception as e:
            logger.warning("Error updating %s for user %s: %s", self.spec.name, user_id, e)
            self._revert(generation, previous)
            return False

        if generation == self._generation:
            self._confirmed = desired
        else:
            logger.info("Write of %s for user %s landed after identity change", self.spec.name, user_id)
        return True

    def _writer_is_current(self) -> bool:
        return self._writer_generation is not None and self._writer_generation == self._generation

    async def _set_coalescing(self, desired: bool) -> bool:
        if not self._writer_is_current():
            await self._wait_for_load()
        if self._writer_is_current():
            self._pending = desired
            return True

        user_id = self._writable_identity()
        if user_id is None:
            return False
        if desired == self._value:
            return True

        generation = self._generation
        self._writer_generation = generation
        value = desired
        try:
            while True:
                self._show(value)
                try:
                    await self._write(user_id, value)
                except asyncio.CancelledError:
                    self._pending = None
                    self._revert(generation, self._confirmed)
                    raise
                except Exception as e:
                    logger.warning("Error updating %s for user %s: %s", self.spec.name, user_id, e)
                    self._pending = None
                    self._revert(generation, self._confirmed)
                    return False

                if generation != self._generation:
                    self._pending = None
                    logger.info("Write of %s for user %s landed after identity change", self.spec.name, user_id)
                    return True
                self._confirmed = value

                pending, self._pending = self._pending, None
                if pending is None or pending == value:
                    break
                value = pending
            return True
        finally:
            if self._writer_generation == generation:
                self._writer_generation = None
