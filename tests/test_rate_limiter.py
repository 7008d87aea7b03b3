"""Tests for RateLimiter."""

from datetime import timedelta

import pytest
from freezegun import freeze_time

from goldcast.dispatch.rate_limiter import RateLimiter


@pytest.fixture
def frozen():
    with freeze_time("2024-05-01 09:00:00") as frozen_time:
        yield frozen_time


def test_fresh_recipient_allowed(frozen):
    limiter = RateLimiter(cooldown_seconds=10, global_floor_seconds=1)
    assert limiter.allow("a@s.whatsapp.net") is True


def test_allow_is_side_effect_free(frozen):
    limiter = RateLimiter(cooldown_seconds=10, global_floor_seconds=1)
    limiter.record_send("a")
    frozen.tick(timedelta(seconds=2))

    answers = {limiter.allow("a") for _ in range(5)}
    assert answers == {False}
    assert {limiter.allow("b") for _ in range(5)} == {True}


def test_per_recipient_cooldown(frozen):
    limiter = RateLimiter(cooldown_seconds=10, global_floor_seconds=1)
    limiter.record_send("a")

    frozen.tick(timedelta(seconds=9))
    assert limiter.allow("a") is False

    frozen.tick(timedelta(seconds=1))
    assert limiter.allow("a") is True


def test_global_floor_blocks_everyone(frozen):
    limiter = RateLimiter(cooldown_seconds=10, global_floor_seconds=1)
    limiter.record_send("a")

    assert limiter.allow("b") is False
    assert limiter.global_remaining() == pytest.approx(1.0)

    frozen.tick(timedelta(milliseconds=600))
    assert limiter.global_remaining() == pytest.approx(0.4)

    frozen.tick(timedelta(milliseconds=400))
    assert limiter.allow("b") is True
    assert limiter.global_remaining() == 0


def test_record_without_recipient_only_moves_global_clock(frozen):
    limiter = RateLimiter(cooldown_seconds=10, global_floor_seconds=1)
    limiter.record_send()

    assert limiter.recipient_allowed("a") is True
    assert limiter.allow("a") is False


def test_forget_and_reset(frozen):
    limiter = RateLimiter(cooldown_seconds=10, global_floor_seconds=0)
    limiter.record_send("a")
    limiter.record_send("b")

    limiter.forget("a")
    assert limiter.allow("a") is True
    assert limiter.allow("b") is False

    limiter.reset()
    assert limiter.allow("b") is True


def test_injected_clock():
    now = [0.0]
    limiter = RateLimiter(cooldown_seconds=5, global_floor_seconds=0, clock=lambda: now[0])
    limiter.record_send("a")
    now[0] = 4.9
    assert limiter.allow("a") is False
    now[0] = 5.0
    assert limiter.allow("a") is True


def test_prune_drops_only_expired_entries():
    now = [0.0]
    limiter = RateLimiter(cooldown_seconds=10, global_floor_seconds=0, clock=lambda: now[0])
    limiter.record_send("old")
    now[0] = 8.0
    limiter.record_send("recent")
    now[0] = 10.0

    assert limiter.prune() == 1
    assert len(limiter) == 1
    assert limiter.allow("old") is True
    assert limiter.allow("recent") is False


def test_many_senders_stay_bounded():
    now = [0.0]
    limiter = RateLimiter(
        cooldown_seconds=10, global_floor_seconds=0, clock=lambda: now[0], prune_every=100
    )

    for i in range(10_000):
        now[0] = i * 1.0
        limiter.record_send(f"sender-{i}")
        # only senders from the last cooldown window plus one prune batch remain
        assert len(limiter) <= 110
