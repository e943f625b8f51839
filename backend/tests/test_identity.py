from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.identity import IdentityHub  # noqa: E402
from services.notifier import ChangeNotifier  # noqa: E402


def test_subscribers_receive_changes_in_order():
    async def scenario():
        hub = IdentityHub()
        subscription = hub.subscribe()
        hub.sign_in("7")
        hub.sign_out()
        hub.sign_in("9")
        seen = []
        async for user_id in subscription:
            seen.append(user_id)
            subscription.task_done()
            if len(seen) == 3:
                break
        await subscription.join()
        return seen, hub.current_user_id()

    seen, current = asyncio.run(scenario())
    assert seen == ["7", None, "9"]
    assert current == "9"


def test_closed_subscription_releases_join_and_stops_delivery():
    async def scenario():
        hub = IdentityHub("1")
        subscription = hub.subscribe()
        hub.sign_in("2")
        subscription.close()
        await asyncio.wait_for(subscription.join(), timeout=1)
        hub.sign_in("3")
        return hub.subscriber_count, subscription.closed

    count, closed = asyncio.run(scenario())
    assert count == 0
    assert closed is True


def test_sign_in_requires_user_id():
    with pytest.raises(ValueError):
        IdentityHub().sign_in("")


def test_notifier_keeps_calling_listeners_after_one_fails():
    notifier = ChangeNotifier()
    calls = []

    def broken():
        raise RuntimeError("listener failure")

    notifier.add_listener(broken)
    remove = notifier.add_listener(lambda: calls.append("ok"))
    notifier.notify_listeners()
    remove()
    notifier.notify_listeners()

    assert calls == ["ok"]
    assert notifier.has_listeners is True
