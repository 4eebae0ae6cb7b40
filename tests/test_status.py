"""Status lifecycle transitions and the stale-timer guard."""
import asyncio

from fieldscan.state import ScanStatus
from fieldscan.status import StatusLifecycle


def drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


def test_success_auto_reverts_to_idle():
    async def scenario():
        status = StatusLifecycle(revert_delay=0.02)
        queue = status.register_ui()
        token = status.begin()
        assert status.status is ScanStatus.LOADING

        assert status.succeed(token)
        assert status.status is ScanStatus.SUCCESS

        await asyncio.sleep(0.08)
        assert status.status is ScanStatus.IDLE
        return [e.status for e in drain(queue) if e.type == "status"]

    seen = asyncio.run(scenario())
    assert seen == [ScanStatus.LOADING, ScanStatus.SUCCESS, ScanStatus.IDLE]


def test_error_carries_message_and_reverts():
    async def scenario():
        status = StatusLifecycle(revert_delay=0.02)
        token = status.begin()
        status.fail(token, "Order already delivered")
        snapshot = status.snapshot()
        await asyncio.sleep(0.08)
        return snapshot, status.status

    snapshot, final = asyncio.run(scenario())
    assert snapshot.status is ScanStatus.ERROR
    assert snapshot.error == "Order already delivered"
    assert final is ScanStatus.IDLE


def test_late_timer_does_not_regress_newer_transaction():
    async def scenario():
        status = StatusLifecycle(revert_delay=0.03)
        first = status.begin()
        status.succeed(first)
        # A new transaction starts before the revert timer fires
        second = status.begin()
        await asyncio.sleep(0.08)
        assert status.status is ScanStatus.LOADING
        assert not status.succeed(first)
        assert status.status is ScanStatus.LOADING
        status.fail(second, "boom")
        assert status.status is ScanStatus.ERROR
        await asyncio.sleep(0.08)
        return status.status

    assert asyncio.run(scenario()) is ScanStatus.IDLE


def test_reset_forces_idle_and_ignores_result_of_abandoned_transaction():
    async def scenario():
        status = StatusLifecycle(revert_delay=0.02)
        token = status.begin()
        status.reset()
        assert status.status is ScanStatus.IDLE
        assert not status.fail(token, "late failure")
        assert not status.settle_idle(token)
        return status.status

    assert asyncio.run(scenario()) is ScanStatus.IDLE


def test_reset_cancels_pending_revert():
    async def scenario():
        status = StatusLifecycle(revert_delay=0.03)
        queue = status.register_ui()
        token = status.begin()
        status.succeed(token)
        status.reset()
        drain(queue)
        await asyncio.sleep(0.08)
        return drain(queue)

    assert asyncio.run(scenario()) == []


def test_full_queue_drops_oldest_event():
    status = StatusLifecycle(queue_size=2)
    queue = status.register_ui()

    status.publish("one")
    status.publish("two")
    status.publish("three")

    assert [e.type for e in drain(queue)] == ["two", "three"]


def test_unregistered_queue_receives_nothing():
    status = StatusLifecycle()
    queue = status.register_ui()
    status.unregister_ui(queue)

    status.publish("scan", {"text": "ABC123"})

    assert queue.empty()
