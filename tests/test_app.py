"""End-to-end tests for GoldcastApp on the in-memory transport."""

import asyncio
from decimal import Decimal

import pytest
from conftest import ScriptedSource, snap

from goldcast.app import DebounceFired, GoldcastApp, PollResult
from goldcast.config_loader import (
    AppConfig,
    ConnectionConfig,
    DispatchConfig,
    MonitorConfig,
    RateLimitConfig,
    SourceConfig,
)
from goldcast.constants import ConnectionState
from goldcast.data.snapshot import ChangeEvent, Delta
from goldcast.messages import HELP_TEXT, SUBSCRIBED_TEXT, render_rate
from goldcast.transport.sim import SimTransport

A = "6281100000001@s.whatsapp.net"
B = "6281100000002@s.whatsapp.net"
C = "6281100000003@s.whatsapp.net"
D = "6281100000004@s.whatsapp.net"


def fast_config(warmup=0.05, subscribers=(A, B)) -> AppConfig:
    return AppConfig(
        source=SourceConfig(kind="sim", warmup=False, retry_attempts=1),
        monitor=MonitorConfig(
            poll_interval_seconds=0.02,
            min_change=1,
            debounce_seconds=0.1,
            min_broadcast_interval_seconds=0,
        ),
        dispatch=DispatchConfig(batch_size=10, batch_delay_seconds=0),
        rate_limit=RateLimitConfig(cooldown_seconds=0.5, global_floor_seconds=0),
        connection=ConnectionConfig(
            warmup_seconds=warmup,
            backoff_base_seconds=0.01,
            backoff_max_seconds=0.05,
            max_attempts=2,
        ),
        subscribers=list(subscribers),
    )


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def settle(seconds=0.1):
    await asyncio.sleep(seconds)


@pytest.fixture
def transport():
    return SimTransport()


@pytest.fixture
def rates():
    return ScriptedSource([snap(100, 110)])


def make_app(transport, rates, **config_overrides):
    return GoldcastApp(
        config=fast_config(**config_overrides),
        transport=transport,
        source=rates,
        setup_logging=False,
    )


async def start(app):
    task = asyncio.create_task(app.run())
    await wait_until(lambda: app.connection is not None and app.connection.is_ready)
    await wait_until(lambda: app.detector.last_observed is not None)
    return task


async def stop(app, task):
    app.request_shutdown()
    return await asyncio.wait_for(task, timeout=2.0)


@pytest.mark.asyncio
async def test_burst_of_changes_gives_one_broadcast(transport, rates):
    app = make_app(transport, rates)
    task = await start(app)

    rates.push(snap(101, 110), snap(103, 112))
    await wait_until(lambda: len(app.dispatcher.history) == 1)
    await settle(0.3)

    expected = render_rate(snap(103, 112))
    assert transport.sent_to(A) == [expected]
    assert transport.sent_to(B) == [expected]
    assert app.detector.last_broadcast == snap(103, 112)
    assert app.scheduler.fired == 1

    assert await stop(app, task) is None


@pytest.mark.asyncio
async def test_failed_recipient_still_moves_baseline(transport, rates):
    transport.failing_recipients = {B}
    app = make_app(transport, rates, subscribers=(A, B, C))
    task = await start(app)

    rates.push(snap(150, 160))
    await wait_until(lambda: len(app.dispatcher.history) == 1)

    record = app.dispatcher.history.last()
    assert [(o.recipient, o.ok) for o in record.recipients] == [
        (A, True),
        (B, False),
        (C, True),
    ]
    assert app.detector.last_broadcast == snap(150, 160)
    assert app.stats()["last_broadcast"]["failed"] == 1

    await stop(app, task)


@pytest.mark.asyncio
async def test_small_moves_are_not_broadcast(transport, rates):
    app = make_app(transport, rates)
    app.config.monitor.min_change = 1000
    task = await start(app)

    rates.push(snap(500, 600))
    await settle(0.3)

    assert transport.sent == []
    assert app.scheduler.armed == 0

    await stop(app, task)


@pytest.mark.asyncio
async def test_subscribe_and_query(transport, rates):
    app = make_app(transport, rates, subscribers=())
    task = await start(app)

    transport.inject_message(C, "subscribe")
    transport.inject_message(D, "/emas")
    await wait_until(lambda: transport.sent_to(C) and transport.sent_to(D))
    await app.dispatcher.drain()

    assert app.registry.is_subscribed(C)
    assert transport.sent_to(C) == [SUBSCRIBED_TEXT]
    assert transport.sent_to(D) == [render_rate(snap(100, 110))]

    await stop(app, task)


@pytest.mark.asyncio
async def test_replies_are_rate_limited(transport, rates):
    app = make_app(transport, rates, subscribers=())
    task = await start(app)

    transport.inject_message(C, "help")
    transport.inject_message(C, "help")
    transport.inject_message(C, "subscribe")
    await settle()
    await app.dispatcher.drain()

    assert transport.sent_to(C) == [HELP_TEXT]
    # the command still applies even when its reply is suppressed
    assert app.registry.is_subscribed(C)

    await stop(app, task)


@pytest.mark.asyncio
async def test_unknown_text_self_and_status_are_ignored(transport, rates):
    app = make_app(transport, rates, subscribers=())
    task = await start(app)

    transport.inject_message(C, "selamat pagi")
    transport.inject_message("120363025@g.us", "harga emas turun lagi ya")
    transport.inject_message(D, "emas", is_self=True)
    transport.inject_message("status@broadcast", "emas")
    await settle()
    await app.dispatcher.drain()

    assert transport.sent == []

    await stop(app, task)


@pytest.mark.asyncio
async def test_duplicate_message_id_processed_once(transport, rates):
    app = make_app(transport, rates, subscribers=())
    task = await start(app)

    transport.inject_message(C, "help", msg_id="wamid-1")
    transport.inject_message(D, "help", msg_id="wamid-1")
    await settle()
    await app.dispatcher.drain()

    assert transport.sent_to(C) == [HELP_TEXT]
    assert transport.sent_to(D) == []

    await stop(app, task)


@pytest.mark.asyncio
async def test_backlog_during_warmup_is_ignored(transport, rates):
    app = make_app(transport, rates, warmup=0.3, subscribers=())
    task = asyncio.create_task(app.run())
    await wait_until(
        lambda: app.connection is not None
        and app.connection.state == ConnectionState.WARMING_UP
    )

    transport.inject_message(C, "subscribe", msg_id="old-1")
    await wait_until(lambda: app.connection.is_ready)
    # the server redelivers the same message once the session is up
    transport.inject_message(C, "subscribe", msg_id="old-1")
    await settle()
    await app.dispatcher.drain()

    assert not app.registry.is_subscribed(C)
    assert transport.sent == []

    await stop(app, task)


@pytest.mark.asyncio
async def test_reconnect_cancels_pending_broadcast_then_resumes(transport, rates):
    app = make_app(transport, rates)
    app.config.monitor.debounce_seconds = 0.3
    app.config.connection.backoff_base_seconds = 0.2
    app.config.connection.backoff_max_seconds = 0.2
    task = await start(app)

    rates.push(snap(120, 130))
    await wait_until(lambda: app.scheduler.pending)
    transport.drop("connection_lost")
    await wait_until(lambda: app.connection.state == ConnectionState.RECONNECTING)
    assert not app.scheduler.pending

    await wait_until(lambda: len(app.dispatcher.history) == 1, timeout=3.0)
    assert transport.sent_to(A) == [render_rate(snap(120, 130))]
    assert transport.connect_calls == 2

    await stop(app, task)


@pytest.mark.asyncio
async def test_logged_out_stops_the_app(transport, rates):
    app = make_app(transport, rates)
    task = await start(app)

    transport.drop("logged_out")
    exit_reason = await asyncio.wait_for(task, timeout=2.0)

    assert "logged out" in exit_reason
    assert app.connection.state == ConnectionState.LOGGED_OUT
    assert rates.closed
    assert not transport.connected


@pytest.mark.asyncio
async def test_reconnects_exhausted_stops_the_app(rates):
    transport = SimTransport(connect_failures=100)
    app = make_app(transport, rates)

    exit_reason = await asyncio.wait_for(app.run(), timeout=2.0)

    assert "reconnect attempts" in exit_reason
    assert transport.connect_calls == 3
    assert transport.sent == []


def process_queued(app):
    while not app._queue.empty():
        app._process(app._queue.get_nowait())


async def ready_without_loop(app):
    """Initialize and bring the session up, leaving the event queue to the test."""
    await app.initialize()
    await app.connection.start()
    process_queued(app)
    await wait_until(lambda: not app._queue.empty())
    process_queued(app)
    assert app.connection.is_ready


@pytest.mark.asyncio
async def test_poll_queued_behind_firing_does_not_rebroadcast(transport):
    rates = ScriptedSource([snap(103, 112)])
    app = make_app(transport, rates)
    await ready_without_loop(app)

    app._process(PollResult(snap(100, 110)))
    app._process(PollResult(snap(103, 112)))
    await wait_until(lambda: not app._queue.empty())  # the debounce firing

    # a poll that was already queued ahead of the firing
    app._process(PollResult(snap(103, 112)))
    assert app.scheduler.pending

    process_queued(app)
    assert not app.scheduler.pending
    await app._broadcast_task
    process_queued(app)

    await settle(0.3)
    process_queued(app)

    assert len(app.dispatcher.history) == 1
    assert transport.sent_to(A) == [render_rate(snap(103, 112))]
    assert app.stats()["broadcasts_started"] == 1
    app.connection.stop()


@pytest.mark.asyncio
async def test_queued_real_move_survives_the_commit(transport):
    rates = ScriptedSource([snap(103, 112)])
    app = make_app(transport, rates)
    await ready_without_loop(app)

    app._process(PollResult(snap(100, 110)))
    app._process(PollResult(snap(103, 112)))
    await wait_until(lambda: not app._queue.empty())

    app._process(PollResult(snap(105, 114)))
    process_queued(app)

    assert app.scheduler.pending
    assert app.scheduler.pending_event.snapshot == snap(105, 114)
    await app._broadcast_task
    app.scheduler.cancel()
    app.connection.stop()


@pytest.mark.asyncio
async def test_skipped_firing_is_not_counted_as_broadcast(transport, rates):
    app = make_app(transport, rates)
    await app.initialize()
    event = ChangeEvent(
        snapshot=snap(103, 112),
        since_last_observed=Delta(Decimal("3"), Decimal("2")),
        since_last_broadcast=Delta(Decimal("3"), Decimal("2")),
    )

    app._process(DebounceFired(event))

    stats = app.stats()
    assert stats["broadcasts_started"] == 0
    assert stats["broadcasts_skipped"] == 1
    assert app.dispatcher.history.last() is None
